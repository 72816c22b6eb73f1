from __future__ import annotations

import dataclasses
import logging
import time
from typing import Optional

from ..audio import AudioBundle
from ..settings import AsrSettings
from .providers.base import AsrProvider
from .providers.mock import MockAsrProvider
from .providers.speech_api import SpeechApiProvider
from .types import AsrOptions, TranscriptionResult

logger = logging.getLogger(__name__)


class AsrService:
    """Coordinates ASR provider usage."""

    def __init__(self, *, provider: Optional[AsrProvider] = None, options: Optional[AsrOptions] = None) -> None:
        self._provider = provider or MockAsrProvider()
        self._options = options or AsrOptions()

    @classmethod
    def from_settings(cls, cfg: AsrSettings) -> "AsrService":
        """Pick the real client when a credential is configured, the mock otherwise."""

        options = AsrOptions(model=cfg.model, language_code=cfg.language_code)
        if not cfg.has_credential:
            return cls(provider=MockAsrProvider(latency_seconds=cfg.mock_latency_seconds), options=options)
        provider = SpeechApiProvider(
            api_key=(cfg.api_key or "").strip(),
            api_url=cfg.api_url,
            model=cfg.model,
            language_code=cfg.language_code,
            timeout=cfg.timeout,
            max_response_bytes=cfg.max_response_bytes,
        )
        return cls(provider=provider, options=options)

    @property
    def provider(self) -> AsrProvider:
        return self._provider

    @property
    def is_mock(self) -> bool:
        return isinstance(self._provider, MockAsrProvider)

    @property
    def inspects_audio(self) -> bool:
        return self._provider.inspects_audio

    async def transcribe_bundle(self, bundle: AudioBundle, *, options: Optional[AsrOptions] = None) -> TranscriptionResult:
        opts = options or self._options
        if bundle.content_type and bundle.content_type != opts.content_type:
            opts = dataclasses.replace(opts, content_type=bundle.content_type)
        started = time.perf_counter()
        result = await self._provider.transcribe(audio=bundle.data, options=opts)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return TranscriptionResult(
            text=result.text.strip(),
            processing_time_ms=elapsed_ms,
            provider=result.provider or self._provider.name,
        )

    async def aclose(self) -> None:
        await self._provider.aclose()
