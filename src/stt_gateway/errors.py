from __future__ import annotations

"""Error taxonomy shared by the audio, ASR and session layers."""

from enum import Enum
from typing import Optional

TECHNICAL_DETAIL_LIMIT = 200

GENERIC_USER_MESSAGE = "Transcription failed"
INTERNAL_USER_MESSAGE = "Internal server error"


class FormatErrorKind(str, Enum):
    TOO_SMALL = "too_small"
    TOO_LARGE = "too_large"
    BAD_SIGNATURE = "bad_signature"
    MISSING_FORMAT_CHUNK = "missing_format_chunk"
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRECTION_FAILED = "correction_failed"


class TranscriptionErrorKind(str, Enum):
    BAD_AUDIO = "bad_audio"
    AUTH_FAILURE = "auth_failure"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UNEXPECTED_STATUS = "unexpected_status"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"


class SessionErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    COOLDOWN = "cooldown"
    QUEUE_OVERFLOW = "queue_overflow"


class EnvelopeErrorKind(str, Enum):
    MALFORMED_MESSAGE = "malformed_message"


_USER_MESSAGES: dict[Enum, str] = {
    FormatErrorKind.TOO_SMALL: "Audio file too small",
    FormatErrorKind.TOO_LARGE: "Audio file too large",
    FormatErrorKind.BAD_SIGNATURE: "Audio format not supported, please try again",
    FormatErrorKind.MISSING_FORMAT_CHUNK: "Audio format not supported, please try again",
    FormatErrorKind.UNSUPPORTED_FORMAT: "Audio format not supported, please try again",
    FormatErrorKind.CORRECTION_FAILED: "Audio format not supported, please try again",
    TranscriptionErrorKind.BAD_AUDIO: "Audio format not supported, please try again",
    TranscriptionErrorKind.AUTH_FAILURE: "Service authentication error",
    TranscriptionErrorKind.PAYLOAD_TOO_LARGE: "Audio file too large",
    TranscriptionErrorKind.RATE_LIMITED: "Service busy, please try again in a moment",
    TranscriptionErrorKind.UPSTREAM_UNAVAILABLE: GENERIC_USER_MESSAGE,
    TranscriptionErrorKind.UNEXPECTED_STATUS: GENERIC_USER_MESSAGE,
    TranscriptionErrorKind.NETWORK_ERROR: "Network error, please check your connection",
    TranscriptionErrorKind.TIMEOUT: "Processing took too long, please try again",
    TranscriptionErrorKind.MALFORMED_RESPONSE: GENERIC_USER_MESSAGE,
    SessionErrorKind.RATE_LIMITED: "Too many requests, please slow down",
    SessionErrorKind.COOLDOWN: "Service temporarily unavailable due to errors",
    SessionErrorKind.QUEUE_OVERFLOW: "Request superseded by a newer one",
    EnvelopeErrorKind.MALFORMED_MESSAGE: "Invalid audio message",
}


def truncate_detail(detail: str, limit: int = TECHNICAL_DETAIL_LIMIT) -> str:
    return detail[:limit]


class SttError(Exception):
    """Base class for errors that are reported back to the sender."""

    kind: Enum

    def __init__(self, kind: Enum, detail: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        if self._user_message:
            return self._user_message
        return _USER_MESSAGES.get(self.kind, GENERIC_USER_MESSAGE)

    @property
    def technical(self) -> str:
        return truncate_detail(self.detail)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value}: {self.detail!r})"


class FormatError(SttError):
    """Container could not be parsed, validated or corrected."""

    def __init__(self, kind: FormatErrorKind, detail: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(kind, detail, user_message=user_message)


class TranscriptionError(SttError):
    """The speech service call failed or returned something unusable."""

    def __init__(
        self,
        kind: TranscriptionErrorKind,
        detail: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(kind, detail, user_message=user_message)
        self.status_code = status_code


class SessionError(SttError):
    """A message was refused by the per-connection admission rules."""

    def __init__(self, kind: SessionErrorKind, detail: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(kind, detail, user_message=user_message)


class EnvelopeError(SttError):
    """The inbound message could not be decoded into an audio payload."""

    def __init__(self, detail: str) -> None:
        super().__init__(EnvelopeErrorKind.MALFORMED_MESSAGE, detail)


__all__ = [
    "EnvelopeError",
    "EnvelopeErrorKind",
    "FormatError",
    "FormatErrorKind",
    "GENERIC_USER_MESSAGE",
    "INTERNAL_USER_MESSAGE",
    "SessionError",
    "SessionErrorKind",
    "SttError",
    "TranscriptionError",
    "TranscriptionErrorKind",
    "truncate_detail",
]
