from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Union

from pydantic import ValidationError

from ..errors import EnvelopeError, FormatError, FormatErrorKind
from ..schemas import InboundAudioMessage
from .types import AudioEnvelope, AudioMetadata

logger = logging.getLogger(__name__)

WAV_MIME_TYPES = frozenset({"audio/wav", "audio/wave", "audio/x-wav", "audio/vnd.wave"})
DEFAULT_MIME_TYPE = "audio/wav"

_DATA_URL_PREFIX = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

RawMessage = Union[str, bytes]


@dataclass(slots=True)
class IngestLimits:
    min_bytes: int
    max_bytes: int


def decode_base64(text: str) -> bytes:
    """Lenient base64 decoding: whitespace, data-URL prefixes and missing padding are tolerated."""

    cleaned = _WHITESPACE.sub("", _DATA_URL_PREFIX.sub("", text.strip()))
    cleaned = cleaned.rstrip("=")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeError(f"Message parsing failed: {exc}") from exc


class AudioIngestor:
    """Parses inbound socket messages into AudioEnvelope objects."""

    def __init__(self, *, limits: IngestLimits) -> None:
        self._limits = limits

    @property
    def limits(self) -> IngestLimits:
        return self._limits

    def check_size(self, size: int) -> None:
        if size > self._limits.max_bytes:
            raise FormatError(
                FormatErrorKind.TOO_LARGE,
                f"message of {size} bytes exceeds {self._limits.max_bytes}",
                user_message=f"Audio file too large (max {self._limits.max_bytes // (1024 * 1024)}MB)",
            )
        if size < self._limits.min_bytes:
            raise FormatError(FormatErrorKind.TOO_SMALL, f"message of {size} bytes below {self._limits.min_bytes}")

    def from_message(self, message: RawMessage) -> AudioEnvelope:
        if isinstance(message, (bytes, bytearray)):
            try:
                text = bytes(message).decode("utf-8")
            except UnicodeDecodeError:
                return AudioEnvelope(payload=bytes(message), declared_mime_type=DEFAULT_MIME_TYPE)
        else:
            text = message

        try:
            parsed = InboundAudioMessage.model_validate_json(text)
        except ValidationError:
            payload = decode_base64(text)
            logger.debug("audio.ingest.raw_base64", extra={"bytes": len(payload)})
            return AudioEnvelope(payload=payload, declared_mime_type=DEFAULT_MIME_TYPE)

        payload = decode_base64(parsed.audio)
        mime_type = parsed.mime_type.strip().lower()
        if mime_type.split(";", 1)[0] not in WAV_MIME_TYPES:
            logger.debug("audio.ingest.mime_mismatch", extra={"mime_type": mime_type})

        metadata = None
        if parsed.metadata is not None:
            metadata = AudioMetadata(
                duration_seconds=parsed.metadata.duration,
                sample_rate=parsed.metadata.sample_rate,
                channels=parsed.metadata.channels,
            )
        logger.debug("audio.ingest.envelope", extra={"mime_type": mime_type, "bytes": len(payload)})
        return AudioEnvelope(
            payload=payload,
            declared_mime_type=mime_type,
            timestamp=parsed.timestamp,
            metadata=metadata,
        )


__all__ = ["AudioIngestor", "IngestLimits", "WAV_MIME_TYPES", "decode_base64"]
