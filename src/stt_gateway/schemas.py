from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# -----------------------------
# Inbound
# -----------------------------
class InboundMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    duration: Optional[float] = None
    sample_rate: Optional[int] = Field(default=None, alias="sampleRate")
    channels: Optional[int] = None


class InboundAudioMessage(BaseModel):
    """JSON envelope sent by the recording client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    audio: str = Field(min_length=1)
    mime_type: str = Field(alias="mimeType", min_length=1)
    timestamp: Optional[datetime] = None
    metadata: Optional[InboundMetadata] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def lenient_timestamp(cls, value: Any) -> Any:
        # unparsable timestamps are dropped, never rejected
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @field_validator("metadata", mode="before")
    @classmethod
    def lenient_metadata(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


# -----------------------------
# Outbound
# -----------------------------
class OutboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TranscriptMessage(OutboundMessage):
    transcript: str
    timestamp: str = Field(default_factory=utc_timestamp)
    processing_time: int = Field(alias="processingTime", ge=0)


class EmptyTranscriptMessage(OutboundMessage):
    transcript: Literal[""] = ""
    message: str = "No speech detected in audio"


class ErrorMessage(OutboundMessage):
    error: str
    technical: Optional[str] = None


class KeepAliveMessage(OutboundMessage):
    type: Literal["keepalive"] = "keepalive"
    timestamp: str = Field(default_factory=utc_timestamp)


__all__ = [
    "EmptyTranscriptMessage",
    "ErrorMessage",
    "InboundAudioMessage",
    "InboundMetadata",
    "KeepAliveMessage",
    "OutboundMessage",
    "TranscriptMessage",
    "utc_timestamp",
]
