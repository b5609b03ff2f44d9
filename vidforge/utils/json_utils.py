"""
JSON extraction from LLM responses.

Models often wrap JSON in markdown fences or add prose around it.

Example:
    from vidforge.utils.json_utils import extract_json_object

    data = extract_json_object('Sure! ```json\\n{"enhancedText": "Hi."}\\n```')
    # {"enhancedText": "Hi."}
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Extract the first JSON object from an LLM response.

    Tries the content of a markdown code fence first, then scans the text
    for the first position where a complete object decodes.

    Args:
        text: Raw LLM response

    Returns:
        Decoded object, or None if no JSON object is present
    """
    if not text or not text.strip():
        return None

    candidates = [m.group(1) for m in _FENCE_RE.finditer(text)]
    candidates.append(text)

    decoder = json.JSONDecoder()
    for candidate in candidates:
        start = candidate.find("{")
        while start != -1:
            try:
                value, _ = decoder.raw_decode(candidate, start)
            except json.JSONDecodeError:
                start = candidate.find("{", start + 1)
                continue
            if isinstance(value, dict):
                return value
            start = candidate.find("{", start + 1)

    preview = text[:200] + "..." if len(text) > 200 else text
    logger.warning(f"No JSON object found in response: {preview}")
    return None
