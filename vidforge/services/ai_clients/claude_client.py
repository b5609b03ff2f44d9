"""
Claude client for script enhancement and summaries (Anthropic SDK).
"""

import logging

from anthropic import APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic

from vidforge.config import Settings
from vidforge.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientError,
    AIClientResponseError,
    AIClientTimeoutError,
)

logger = logging.getLogger(__name__)

PROVIDER = "claude"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"


def _translate_error(error: Exception, model: str) -> AIClientError:
    if isinstance(error, APITimeoutError):
        return AIClientTimeoutError("Claude request timed out", provider=PROVIDER, model=model, original_error=error)
    if isinstance(error, APIStatusError):
        return AIClientResponseError(
            f"Claude API error: {error.message}",
            provider=PROVIDER,
            model=model,
            status_code=error.status_code,
            response_body=str(error.body) if error.body else None,
            original_error=error,
        )
    return AIClientConnectionError(f"Cannot reach Claude API: {error}", provider=PROVIDER, model=model, original_error=error)


class ClaudeClient:
    """
    Single-turn completions with a system prompt.

    Connection errors and 5xx answers are retried by the SDK itself
    (config.max_retries).

    Example:
        async with ClaudeClient.from_settings(settings) as client:
            answer = await client.complete(system_prompt, user_prompt, temperature=0.3)
    """

    def __init__(
        self,
        config: AIClientConfig,
        default_model: str = DEFAULT_CLAUDE_MODEL,
        client: AsyncAnthropic | None = None,
    ):
        """
        Args:
            config: Connection settings, api_key required unless client is given
            default_model: Model used when complete() gets none
            client: Preconfigured SDK client

        Raises:
            ValueError: If no API key and no client
        """
        if client is None and not config.api_key:
            raise ValueError("ClaudeClient requires ANTHROPIC_API_KEY")

        self.config = config
        self.default_model = default_model
        self.client = client or AsyncAnthropic(
            api_key=config.api_key,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )
        logger.info(f"ClaudeClient ready, model: {default_model}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaudeClient":
        """
        Raises:
            ValueError: If ANTHROPIC_API_KEY is not set
        """
        config = AIClientConfig(
            base_url="https://api.anthropic.com",
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout,
        )
        return cls(config=config, default_model=settings.script_model)

    async def __aenter__(self) -> "ClaudeClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    async def complete(
        self,
        system: str,
        prompt: str,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        """
        Send one user prompt and return the text of the answer.

        Args:
            system: System prompt (skipped when empty)
            prompt: User message
            model: Model override
            temperature: Sampling temperature
            max_tokens: Answer length limit

        Returns:
            Concatenated text blocks of the answer

        Raises:
            AIClientError: If the request fails
        """
        model = model or self.default_model
        request = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        try:
            response = await self.client.messages.create(**request)
        except (APITimeoutError, APIConnectionError, APIStatusError) as e:
            logger.error(f"Claude request failed: {type(e).__name__}: {e}")
            raise _translate_error(e, model) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        logger.info(
            f"Claude answered {len(text)} chars "
            f"({response.usage.input_tokens} in / {response.usage.output_tokens} out tokens)"
        )
        return text
