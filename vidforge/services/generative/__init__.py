"""
Generative gateway: transcription, script polish, voice synthesis, summaries
and step-by-step documentation.

Modes (Settings.generative_mode):
    provider: live providers, configuration errors are raised
    fallback: deterministic offline implementation
    auto: providers that are configured, fallback for the rest
"""

import logging

from vidforge.config import Settings
from vidforge.services.generative.base import (
    GenerativeGateway,
    ScriptEnhancement,
    TranscriptionResult,
)
from vidforge.services.generative.provider import ProviderGenerativeGateway
from vidforge.services.generative.synthetic import SyntheticGenerativeGateway, enhance_text

logger = logging.getLogger(__name__)


def create_generative_gateway(settings: Settings) -> GenerativeGateway:
    """
    Create the gateway selected by settings.generative_mode.

    Args:
        settings: Application settings

    Returns:
        ProviderGenerativeGateway or SyntheticGenerativeGateway

    Raises:
        ValueError: Unknown mode, or "provider" mode with missing configuration
    """
    mode = settings.generative_mode.lower()

    if mode == "fallback":
        logger.info("Generative mode: fallback")
        return SyntheticGenerativeGateway()

    if mode == "provider":
        gateway = ProviderGenerativeGateway.from_settings(settings, require_all=True)
        logger.info("Generative mode: provider")
        return gateway

    if mode == "auto":
        gateway = ProviderGenerativeGateway.from_settings(settings)
        if not gateway.configured_providers:
            logger.info("Generative mode: fallback (no providers configured)")
            return SyntheticGenerativeGateway()
        logger.info(f"Generative mode: provider ({', '.join(gateway.configured_providers)})")
        return gateway

    raise ValueError(f"Unknown generative mode: {settings.generative_mode}")


__all__ = [
    "GenerativeGateway",
    "ProviderGenerativeGateway",
    "ScriptEnhancement",
    "SyntheticGenerativeGateway",
    "TranscriptionResult",
    "create_generative_gateway",
    "enhance_text",
]
