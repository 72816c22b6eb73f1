from __future__ import annotations

import asyncio
import itertools
from typing import Iterator, Sequence

from ..types import AsrOptions, AsrResult
from .base import AsrProvider

DEFAULT_PHRASES: tuple[str, ...] = (
    "नमस्ते, आज का मीटिंग शुरू हो रहा है।",
    "आज हमें प्रोजेक्ट के बारे में बात करनी है।",
    "क्या सभी तैयार हैं?",
    "धन्यवाद, मीटिंग समाप्त।",
)


class MockAsrProvider(AsrProvider):
    """Canned phrases in round-robin order, one per call."""

    name = "mock"
    inspects_audio = False

    def __init__(self, *, phrases: Sequence[str] = DEFAULT_PHRASES, latency_seconds: float = 1.5) -> None:
        if not phrases:
            raise ValueError("mock provider needs at least one phrase")
        self._phrases = tuple(phrases)
        self._cycle: Iterator[str] = itertools.cycle(self._phrases)
        self._latency_seconds = max(0.0, latency_seconds)

    @property
    def phrases(self) -> tuple[str, ...]:
        return self._phrases

    async def transcribe(self, *, audio: bytes, options: AsrOptions) -> AsrResult:
        text = next(self._cycle)
        if self._latency_seconds:
            await asyncio.sleep(self._latency_seconds)
        return AsrResult(text=text, provider=self.name)
