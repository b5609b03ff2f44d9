"""
Speech-to-text client for OpenAI-compatible /v1/audio/transcriptions
endpoints (self-hosted faster-whisper server or a hosted API).
"""

import logging
import time

import httpx

from vidforge.config import Settings
from vidforge.services.ai_clients.base import AIClientConfig, map_http_error, transport_retry

logger = logging.getLogger(__name__)

PROVIDER = "whisper"


class WhisperClient:
    """
    Uploads extracted audio and returns the verbose_json transcription.

    Example:
        async with WhisperClient.from_settings(settings) as client:
            result = await client.transcribe(audio_bytes, "audio.wav")
            segments = result["segments"]
    """

    def __init__(
        self,
        whisper_url: str,
        default_language: str | None = None,
        api_key: str | None = None,
        timeout: float = 7200.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            whisper_url: Base URL of the service
            default_language: Language hint, None lets the model detect it
            api_key: Bearer token for hosted APIs
            timeout: Upload plus transcription budget, seconds
            http_client: Preconfigured client (tests pass a MockTransport)
        """
        self.config = AIClientConfig(base_url=whisper_url.rstrip("/"), timeout=timeout, api_key=api_key)
        self.default_language = default_language
        self.http_client = http_client or httpx.AsyncClient(
            timeout=timeout, headers=self.config.auth_headers
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhisperClient":
        """
        Raises:
            ValueError: If WHISPER_URL is not configured
        """
        if not settings.whisper_url:
            raise ValueError("WhisperClient requires WHISPER_URL")
        return cls(
            whisper_url=settings.whisper_url,
            default_language=settings.whisper_language,
            api_key=settings.speech_api_key,
        )

    @property
    def whisper_url(self) -> str:
        return self.config.base_url

    async def __aenter__(self) -> "WhisperClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    async def check_health(self) -> bool:
        """True when GET /health answers 200 within 5 seconds."""
        try:
            response = await self.http_client.get(f"{self.whisper_url}/health", timeout=5.0)
        except httpx.HTTPError as e:
            logger.debug(f"Whisper unreachable: {e}")
            return False
        return response.status_code == 200

    @transport_retry()
    async def _upload(self, audio: bytes, filename: str, language: str | None) -> httpx.Response:
        form = {"response_format": "verbose_json"}
        if language:
            form["language"] = language
        return await self.http_client.post(
            f"{self.whisper_url}/v1/audio/transcriptions",
            files={"file": (filename, audio, "application/octet-stream")},
            data=form,
        )

    async def transcribe(self, audio: bytes, filename: str, language: str | None = None) -> dict:
        """
        Transcribe encoded audio.

        Args:
            audio: Audio file content
            filename: Upload name; the extension tells the server the codec
            language: Language code, defaults to the configured hint

        Returns:
            verbose_json body: {"text", "language", "duration", "segments": [...]}

        Raises:
            AIClientError: Transport failure, error status or non-JSON body
        """
        language = language or self.default_language
        started = time.time()
        logger.info(f"Transcribing {filename}: {len(audio) / 1024 / 1024:.1f} MB, language={language or 'auto'}")

        try:
            response = await self._upload(audio, filename, language)
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise map_http_error(e, PROVIDER, "Transcription") from e

        logger.info(
            f"Transcribed {filename}: {len(result.get('segments', []))} segments, "
            f"{result.get('duration', 0):.0f}s of audio in {time.time() - started:.1f}s"
        )
        return result
