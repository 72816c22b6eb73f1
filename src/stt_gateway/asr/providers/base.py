from __future__ import annotations

import abc

from ..types import AsrOptions, AsrResult


class AsrProvider(abc.ABC):
    """Interface for ASR providers."""

    name: str
    # Providers that never parse the audio let the session skip container inspection.
    inspects_audio: bool = True

    @abc.abstractmethod
    async def transcribe(self, *, audio: bytes, options: AsrOptions) -> AsrResult:
        """Produce a transcription for the provided audio. One attempt, no retries."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
