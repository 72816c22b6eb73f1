"""ASR provider implementations."""

from .base import AsrProvider
from .mock import MockAsrProvider
from .speech_api import SpeechApiProvider

__all__ = [
    "AsrProvider",
    "MockAsrProvider",
    "SpeechApiProvider",
]
