from __future__ import annotations

"""RIFF/WAVE header parsing and validation against a target profile."""

import logging
import struct
from dataclasses import dataclass

from ..errors import FormatError, FormatErrorKind
from .types import FormatInfo, TargetProfile, ValidationLevel, ValidationVerdict

logger = logging.getLogger(__name__)

RIFF_MAGIC = b"RIFF"
WAVE_MAGIC = b"WAVE"
FMT_TAG = b"fmt "
HEADER_SIZE = 44
FIRST_CHUNK_OFFSET = 12
PCM_FORMAT = 1

_CHUNK_HEADER = struct.Struct("<4sI")
_FMT_FIELDS = struct.Struct("<HHIIHH")


@dataclass(frozen=True, slots=True)
class InspectLimits:
    min_bytes: int = 1000
    max_bytes: int = 50 * 1024 * 1024


def check_size(size: int, limits: InspectLimits) -> None:
    if size < HEADER_SIZE or size < limits.min_bytes:
        minimum = max(HEADER_SIZE, limits.min_bytes)
        raise FormatError(FormatErrorKind.TOO_SMALL, f"WAV file too small: {size} bytes (minimum: {minimum})")
    if size > limits.max_bytes:
        raise FormatError(FormatErrorKind.TOO_LARGE, f"WAV file too large: {size} bytes (maximum: {limits.max_bytes})")


def quick_validate(buffer: bytes) -> bool:
    """Signature-only check, no field parsing."""

    if len(buffer) < HEADER_SIZE:
        return False
    return buffer[0:4] == RIFF_MAGIC and buffer[8:12] == WAVE_MAGIC


def parse_header(buffer: bytes) -> FormatInfo:
    view = memoryview(buffer)
    size = len(view)
    if size < HEADER_SIZE:
        raise FormatError(FormatErrorKind.TOO_SMALL, "WAV file too small to contain valid header")
    if view[0:4] != RIFF_MAGIC:
        raise FormatError(FormatErrorKind.BAD_SIGNATURE, "Invalid RIFF signature")
    if view[8:12] != WAVE_MAGIC:
        raise FormatError(FormatErrorKind.BAD_SIGNATURE, "Invalid WAVE signature")

    offset = FIRST_CHUNK_OFFSET
    fmt_size = 0
    while offset + _CHUNK_HEADER.size <= size:
        chunk_id, chunk_size = _CHUNK_HEADER.unpack_from(view, offset)
        if chunk_id == FMT_TAG:
            fmt_size = chunk_size
            break
        offset += _CHUNK_HEADER.size + chunk_size

    if fmt_size == 0:
        raise FormatError(FormatErrorKind.MISSING_FORMAT_CHUNK, "fmt chunk not found")

    body = offset + _CHUNK_HEADER.size
    if body + _FMT_FIELDS.size > size:
        raise FormatError(FormatErrorKind.MISSING_FORMAT_CHUNK, "fmt chunk truncated")

    audio_format, channels, sample_rate, byte_rate, block_align, bits = _FMT_FIELDS.unpack_from(view, body)
    (riff_size,) = struct.unpack_from("<I", view, 4)

    return FormatInfo(
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        declared_file_size=riff_size + 8,
        format_chunk_size=fmt_size,
        duration_seconds=_duration(size, sample_rate, channels, bits),
    )


def _duration(size: int, sample_rate: int, channels: int, bits: int) -> float:
    bytes_per_second = sample_rate * channels * (bits / 8)
    if bytes_per_second <= 0:
        return 0.0
    return max(0.0, (size - HEADER_SIZE) / bytes_per_second)


def inspect(buffer: bytes, *, limits: InspectLimits | None = None) -> FormatInfo:
    """Check size limits, then parse the container header."""

    check_size(len(buffer), limits or InspectLimits())
    return parse_header(buffer)


def validate(
    info: FormatInfo,
    profile: TargetProfile,
    level: ValidationLevel = ValidationLevel.STANDARD,
    *,
    max_duration_seconds: float = 600.0,
) -> ValidationVerdict:
    errors: list[str] = []
    warnings: list[str] = []
    strict = level is ValidationLevel.STRICT

    if info.audio_format != PCM_FORMAT:
        errors.append(f"Unsupported audio format: {info.audio_format} (must be {PCM_FORMAT} for PCM)")

    if level is not ValidationLevel.BASIC:
        mismatches = (
            ("Sample rate", info.sample_rate, profile.sample_rate, "Hz"),
            ("Channel count", info.channels, profile.channels, ""),
            ("Bit depth", info.bits_per_sample, profile.bit_depth, ""),
        )
        for label, actual, preferred, unit in mismatches:
            if actual == preferred:
                continue
            if strict:
                errors.append(f"{label} {actual}{unit} not optimal (preferred: {preferred}{unit})")
            else:
                warnings.append(f"{label} {actual}{unit}, preferred: {preferred}{unit}")

    if info.duration_seconds > max_duration_seconds:
        errors.append(f"Audio too long: {info.duration_seconds:.1f}s (max: {max_duration_seconds:g}s)")

    expected = info.expected_byte_rate
    if abs(info.byte_rate - expected) > 1:
        warnings.append(f"Byte rate mismatch: {info.byte_rate} vs expected {expected:g}")

    if warnings:
        logger.debug("audio.validate.warnings", extra={"warnings": warnings})

    is_valid = not errors
    return ValidationVerdict(
        is_valid=is_valid,
        errors=tuple(errors),
        warnings=tuple(warnings),
        requires_fix=not is_valid or (strict and bool(warnings)),
    )


class FormatInspector:
    """Binds the inspector functions to one target profile and level."""

    def __init__(
        self,
        *,
        profile: TargetProfile,
        level: ValidationLevel = ValidationLevel.STANDARD,
        limits: InspectLimits | None = None,
        max_duration_seconds: float = 600.0,
    ) -> None:
        self.profile = profile
        self.level = level
        self.limits = limits or InspectLimits()
        self.max_duration_seconds = max_duration_seconds

    def inspect(self, buffer: bytes, *, enforce_limits: bool = True) -> FormatInfo:
        if enforce_limits:
            return inspect(buffer, limits=self.limits)
        return parse_header(buffer)

    def validate(self, info: FormatInfo) -> ValidationVerdict:
        return validate(info, self.profile, self.level, max_duration_seconds=self.max_duration_seconds)


__all__ = [
    "FormatInspector",
    "HEADER_SIZE",
    "InspectLimits",
    "PCM_FORMAT",
    "check_size",
    "inspect",
    "parse_header",
    "quick_validate",
    "validate",
]
