from __future__ import annotations

import logging
import time
from typing import Optional

from ..errors import FormatError, FormatErrorKind
from .corrector import FormatCorrector
from .inspector import FormatInspector
from .types import AudioBundle, AudioEnvelope

logger = logging.getLogger(__name__)


class AudioPreprocessor:
    """Validates audio against the target profile and corrects it when allowed."""

    def __init__(
        self,
        *,
        inspector: FormatInspector,
        corrector: Optional[FormatCorrector] = None,
        auto_fix: bool = True,
    ) -> None:
        self._inspector = inspector
        self._corrector = corrector
        self._auto_fix = auto_fix and corrector is not None

    @property
    def inspector(self) -> FormatInspector:
        return self._inspector

    async def normalize(self, envelope: AudioEnvelope, *, tag: str = "audio") -> AudioBundle:
        started = time.perf_counter()
        buffer = envelope.payload

        info = self._inspector.inspect(buffer)
        verdict = self._inspector.validate(info)
        was_corrected = False

        if not verdict.is_valid:
            if not self._auto_fix:
                raise FormatError(
                    FormatErrorKind.UNSUPPORTED_FORMAT,
                    f"WAV validation failed: {', '.join(verdict.errors)}",
                )
            logger.info("audio.normalize.fixing", extra={"tag": tag, "errors": list(verdict.errors)})
            buffer = await self._corrector.fix(buffer, tag=tag)  # type: ignore[union-attr]
            try:
                info = self._inspector.inspect(buffer, enforce_limits=False)
            except FormatError as exc:
                raise FormatError(
                    FormatErrorKind.CORRECTION_FAILED,
                    f"corrected audio is unreadable: {exc.detail}",
                ) from exc
            verdict = self._inspector.validate(info)
            if not verdict.is_valid:
                raise FormatError(
                    FormatErrorKind.CORRECTION_FAILED,
                    f"WAV format could not be corrected automatically: {', '.join(verdict.errors)}",
                )
            was_corrected = True

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "audio.normalize.done",
            extra={
                "tag": tag,
                "corrected": was_corrected,
                "elapsed_ms": elapsed_ms,
                "original_size": len(envelope.payload),
                "final_size": len(buffer),
            },
        )
        return AudioBundle(
            data=buffer,
            content_type="audio/wav",
            format=info,
            verdict=verdict,
            was_corrected=was_corrected,
            original_size=len(envelope.payload),
            processing_time_ms=elapsed_ms,
            warnings=list(verdict.warnings),
        )

    @staticmethod
    def passthrough(envelope: AudioEnvelope) -> AudioBundle:
        """Bundle the payload untouched, for transcribers that never look inside it."""

        return AudioBundle(
            data=envelope.payload,
            content_type=envelope.declared_mime_type,
            original_size=len(envelope.payload),
        )


__all__ = ["AudioPreprocessor"]
