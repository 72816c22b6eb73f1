from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ValidationLevel(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    STRICT = "strict"

    @classmethod
    def parse(cls, value: "str | ValidationLevel") -> "ValidationLevel":
        if isinstance(value, ValidationLevel):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ValueError(f"unknown validation level: {value}") from exc


@dataclass(frozen=True, slots=True)
class TargetProfile:
    """Encoding parameters the speech service expects."""

    sample_rate: int = 16000
    channels: int = 1
    bit_depth: int = 16


@dataclass(slots=True)
class AudioMetadata:
    """Client-declared metadata carried by the JSON envelope."""

    duration_seconds: Optional[float] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None


@dataclass(slots=True)
class AudioEnvelope:
    """Decoded inbound message, alive for one processing cycle."""

    payload: bytes
    declared_mime_type: str = "audio/wav"
    timestamp: Optional[datetime] = None
    metadata: Optional[AudioMetadata] = None


@dataclass(frozen=True, slots=True)
class FormatInfo:
    """Header fields of a RIFF/WAVE container."""

    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    declared_file_size: int
    format_chunk_size: int
    duration_seconds: float

    @property
    def expected_byte_rate(self) -> float:
        return self.sample_rate * self.channels * (self.bits_per_sample / 8)


@dataclass(frozen=True, slots=True)
class ValidationVerdict:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    requires_fix: bool = False


@dataclass(slots=True)
class AudioBundle:
    """Validated (and possibly corrected) audio ready for transcription."""

    data: bytes
    content_type: str
    format: Optional[FormatInfo] = None
    verdict: Optional[ValidationVerdict] = None
    was_corrected: bool = False
    original_size: int = 0
    processing_time_ms: int = 0
    warnings: list[str] = field(default_factory=list)
