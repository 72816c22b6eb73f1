"""Speech recognition providers and selection."""

from .service import AsrService
from .types import AsrOptions, AsrResult, TranscriptionResult

__all__ = ["AsrService", "AsrOptions", "AsrResult", "TranscriptionResult"]
