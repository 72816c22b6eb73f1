"""
pytest configuration: WAV builders and an in-memory session transport.
"""

import struct
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from stt_gateway.session import SessionTransport


def build_wav(
    *,
    sample_rate: int = 16000,
    channels: int = 1,
    bits: int = 16,
    audio_format: int = 1,
    frames: int = 1600,
    extra_chunks: Tuple[Tuple[bytes, bytes], ...] = (),
) -> bytes:
    """Build a canonical RIFF/WAVE file of silence, optionally with chunks before ``fmt ``."""

    block_align = channels * bits // 8
    byte_rate = sample_rate * block_align
    data = b"\x00" * (frames * block_align)
    fmt = struct.pack("<HHIIHH", audio_format, channels, sample_rate, byte_rate, block_align, bits)

    body = b"WAVE"
    for tag, payload in extra_chunks:
        body += tag + struct.pack("<I", len(payload)) + payload
    body += b"fmt " + struct.pack("<I", len(fmt)) + fmt
    body += b"data" + struct.pack("<I", len(data)) + data
    return b"RIFF" + struct.pack("<I", len(body)) + body


@pytest.fixture
def make_wav() -> Callable[..., bytes]:
    return build_wav


class RecordingTransport(SessionTransport):
    """Collects everything a session sends."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.pings = 0
        self.closed_with: Optional[Tuple[int, str]] = None
        self.fail_sends = fail_sends

    async def send_json(self, payload: Dict[str, Any]) -> None:
        if self.fail_sends:
            raise ConnectionError("socket gone")
        self.sent.append(payload)

    async def ping(self) -> None:
        self.pings += 1

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
