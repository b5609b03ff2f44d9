"""
AI provider clients.

Clients:
    WhisperClient: speech-to-text over HTTP
    ClaudeClient: script enhancement and summaries via the Anthropic SDK
    SpeechClient: text-to-speech over HTTP
"""

from vidforge.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientError,
    AIClientResponseError,
    AIClientTimeoutError,
)
from vidforge.services.ai_clients.claude_client import ClaudeClient
from vidforge.services.ai_clients.speech_client import SpeechClient
from vidforge.services.ai_clients.whisper_client import WhisperClient

__all__ = [
    "AIClientConfig",
    "AIClientConnectionError",
    "AIClientError",
    "AIClientResponseError",
    "AIClientTimeoutError",
    "ClaudeClient",
    "SpeechClient",
    "WhisperClient",
]
