from __future__ import annotations

"""Re-encodes WAV buffers to the target profile with ffmpeg."""

import asyncio
import contextlib
import logging
import tempfile
from pathlib import Path
from typing import Sequence

from ..errors import FormatError, FormatErrorKind
from .types import TargetProfile

logger = logging.getLogger(__name__)

_PCM_CODECS = {
    8: "pcm_u8",
    16: "pcm_s16le",
    24: "pcm_s24le",
    32: "pcm_s32le",
}

_STDERR_TAIL = 500


class FormatCorrector:
    """Runs ffmpeg over scoped temporary files.

    Every call gets its own temporary directory under ``work_dir``; the
    directory and both files in it are removed on success, on ffmpeg failure
    and on cancellation.
    """

    def __init__(
        self,
        *,
        profile: TargetProfile,
        work_dir: str | Path,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = 60.0,
    ) -> None:
        if profile.bit_depth not in _PCM_CODECS:
            raise ValueError(f"unsupported target bit depth: {profile.bit_depth}")
        self._profile = profile
        self._work_dir = Path(work_dir)
        self._ffmpeg_path = ffmpeg_path
        self._timeout_seconds = timeout_seconds

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    def build_command(self, input_path: Path, output_path: Path) -> list[str]:
        return [
            self._ffmpeg_path,
            "-nostdin",
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(input_path),
            "-acodec",
            _PCM_CODECS[self._profile.bit_depth],
            "-ac",
            str(self._profile.channels),
            "-ar",
            str(self._profile.sample_rate),
            "-f",
            "wav",
            str(output_path),
        ]

    async def fix(self, buffer: bytes, *, tag: str = "audio") -> bytes:
        self._work_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix=f"fix-{tag}-", dir=self._work_dir) as scratch:
            input_path = Path(scratch) / "input.wav"
            output_path = Path(scratch) / "output.wav"
            input_path.write_bytes(buffer)

            command = self.build_command(input_path, output_path)
            logger.debug("audio.fix.start", extra={"command": " ".join(command), "tag": tag})
            await self._run(command)

            try:
                converted = output_path.read_bytes()
            except FileNotFoundError as exc:
                raise FormatError(FormatErrorKind.CORRECTION_FAILED, "ffmpeg produced no output") from exc

        if not converted:
            raise FormatError(FormatErrorKind.CORRECTION_FAILED, "ffmpeg produced an empty file")
        logger.info(
            "audio.fix.done",
            extra={"tag": tag, "input_bytes": len(buffer), "output_bytes": len(converted)},
        )
        return converted

    async def _run(self, command: Sequence[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise FormatError(
                FormatErrorKind.CORRECTION_FAILED,
                f"ffmpeg not available at {self._ffmpeg_path}",
            ) from exc

        try:
            async with asyncio.timeout(self._timeout_seconds):
                _, stderr = await process.communicate()
        except TimeoutError as exc:
            raise FormatError(
                FormatErrorKind.CORRECTION_FAILED,
                f"Audio format conversion timed out after {self._timeout_seconds:g}s",
            ) from exc
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if process.returncode != 0:
            message = (stderr or b"").decode("utf-8", errors="replace").strip()[-_STDERR_TAIL:]
            raise FormatError(
                FormatErrorKind.CORRECTION_FAILED,
                f"Audio format conversion failed: {message or f'exit code {process.returncode}'}",
            )


__all__ = ["FormatCorrector"]
