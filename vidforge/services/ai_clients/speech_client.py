"""
Text-to-speech client for OpenAI-compatible /v1/audio/speech endpoints.
"""

import logging

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import (
    AIClientConfig,
    AIClientResponseError,
    map_http_error,
    transport_retry,
)

logger = logging.getLogger(__name__)

PROVIDER = "speech"


class SpeechClient:
    """
    Turns the polished script into voiceover audio.

    Example:
        async with SpeechClient.from_settings(settings) as client:
            audio = await client.synthesize("Welcome back.", voice="alloy")
    """

    def __init__(
        self,
        speech_url: str,
        api_key: str | None = None,
        model: str = "tts-1",
        timeout: float = 300.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = AIClientConfig(base_url=speech_url.rstrip("/"), timeout=timeout, api_key=api_key)
        self.model = model
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout, headers=self.config.auth_headers
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpeechClient":
        """
        Raises:
            ValueError: If SPEECH_URL is not configured
        """
        if not settings.speech_url:
            raise ValueError("SpeechClient requires SPEECH_URL")
        return cls(
            speech_url=settings.speech_url,
            api_key=settings.speech_api_key,
            model=settings.speech_model,
            timeout=float(settings.llm_timeout),
        )

    async def __aenter__(self) -> "SpeechClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    @transport_retry()
    async def _request(self, payload: dict) -> httpx.Response:
        return await self.http_client.post(f"{self.config.base_url}/v1/audio/speech", json=payload)

    async def synthesize(self, text: str, voice: str = "alloy", response_format: str = "mp3") -> bytes:
        """
        Synthesize speech.

        Args:
            text: Script to speak
            voice: Provider voice identifier
            response_format: "mp3" or "wav"

        Returns:
            Encoded audio

        Raises:
            AIClientError: Transport failure, error status or empty audio
        """
        logger.info(f"Synthesizing {len(text)} chars, voice={voice}, format={response_format}")
        payload = {
            "model": self.model,
            "input": text,
            "voice": voice,
            "response_format": response_format,
        }

        try:
            response = await self._request(payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise map_http_error(e, PROVIDER, "Speech synthesis", model=self.model) from e

        if not response.content:
            raise AIClientResponseError(
                "Speech synthesis returned empty audio",
                provider=PROVIDER,
                model=self.model,
                status_code=response.status_code,
            )

        logger.info(f"Voiceover audio: {len(response.content) / 1024:.1f} KB")
        return response.content
