from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class AsrOptions:
    model: Optional[str] = None
    language_code: Optional[str] = None
    content_type: str = "audio/wav"
    filename: str = "audio.wav"


@dataclass(slots=True)
class AsrResult:
    text: str
    provider: Optional[str] = None


@dataclass(slots=True)
class TranscriptionResult:
    text: str
    processing_time_ms: int
    provider: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text
