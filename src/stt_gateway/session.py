from __future__ import annotations

"""Per-connection session engine.

One ``SttSession`` is created per accepted socket and owned by that
connection's handler. Inbound messages go through admission (size limits,
cooldown, rate limiting); admitted messages run through
ingest -> inspect/correct -> transcribe in a single background task, so at
most one pipeline runs per session. Messages arriving meanwhile are coalesced
into a single pending slot (latest wins) and picked up after a short delay.
"""

import abc
import asyncio
import logging
import shutil
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from .asr import AsrService
from .audio import (
    AudioIngestor,
    AudioPreprocessor,
    FormatCorrector,
    FormatInspector,
    IngestLimits,
    InspectLimits,
    TargetProfile,
    ValidationLevel,
)
from .audio.ingest import RawMessage
from .errors import (
    INTERNAL_USER_MESSAGE,
    FormatError,
    FormatErrorKind,
    SessionError,
    SessionErrorKind,
    SttError,
)
from .schemas import EmptyTranscriptMessage, ErrorMessage, OutboundMessage, TranscriptMessage
from .settings import SessionSettings, Settings

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
LIFECYCLE_CLOSE_REASONS = frozenset({"", "Component unmounting"})


def _cooldown_error() -> SessionError:
    return SessionError(SessionErrorKind.COOLDOWN, "too many consecutive errors")


def is_lifecycle_close(code: Optional[int], reason: Optional[str]) -> bool:
    """Client unmount/reconnect closes, logged quietly but cleaned up like any other."""

    return code == GOING_AWAY and (reason or "") in LIFECYCLE_CLOSE_REASONS


class SessionTransport(abc.ABC):
    """The socket as seen by a session."""

    @abc.abstractmethod
    async def send_json(self, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def ping(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        raise NotImplementedError


class SessionPhase(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COOLDOWN = "cooldown"
    CLOSED = "closed"


@dataclass(slots=True)
class SessionState:
    id: str
    is_processing: bool = False
    pending: Optional[RawMessage] = None
    last_processed_at: Optional[float] = None
    consecutive_errors: int = 0
    cooldown_until: Optional[float] = None


class SttSession:
    def __init__(
        self,
        *,
        transport: SessionTransport,
        ingestor: AudioIngestor,
        preprocessor: AudioPreprocessor,
        asr: AsrService,
        cfg: SessionSettings,
        work_dir: Optional[Path] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex[:8]
        self.state = SessionState(id=self.id)
        self._transport = transport
        self._ingestor = ingestor
        self._preprocessor = preprocessor
        self._asr = asr
        self._cfg = cfg
        self._work_dir = work_dir
        self._clock = clock
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._keepalive: Optional[asyncio.Task[None]] = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        *,
        transport: SessionTransport,
        app_settings: Settings,
        session_id: Optional[str] = None,
        asr: Optional[AsrService] = None,
    ) -> "SttSession":
        session_id = session_id or uuid.uuid4().hex[:8]
        audio = app_settings.audio
        profile = TargetProfile(
            sample_rate=audio.target_sample_rate,
            channels=audio.target_channels,
            bit_depth=audio.target_bit_depth,
        )
        try:
            level = ValidationLevel.parse(audio.validation_level)
        except ValueError:
            logger.warning("stt.session.bad_validation_level", extra={"value": audio.validation_level})
            level = ValidationLevel.STANDARD

        work_dir = Path(audio.temp_dir) / f"session-{session_id}"
        inspector = FormatInspector(
            profile=profile,
            level=level,
            limits=InspectLimits(min_bytes=audio.min_bytes, max_bytes=audio.max_bytes),
            max_duration_seconds=audio.max_duration_seconds,
        )
        corrector = FormatCorrector(
            profile=profile,
            work_dir=work_dir,
            ffmpeg_path=audio.ffmpeg_path,
            timeout_seconds=audio.correction_timeout_seconds,
        )
        return cls(
            transport=transport,
            ingestor=AudioIngestor(limits=IngestLimits(min_bytes=audio.min_bytes, max_bytes=audio.max_bytes)),
            preprocessor=AudioPreprocessor(inspector=inspector, corrector=corrector, auto_fix=audio.auto_fix),
            asr=asr or AsrService.from_settings(app_settings.asr),
            cfg=app_settings.session,
            work_dir=work_dir,
            session_id=session_id,
        )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def phase(self) -> SessionPhase:
        if self._closed:
            return SessionPhase.CLOSED
        if self.state.is_processing:
            return SessionPhase.PROCESSING
        until = self.state.cooldown_until
        if until is not None and self._clock() < until:
            return SessionPhase.COOLDOWN
        return SessionPhase.IDLE

    @property
    def asr(self) -> AsrService:
        return self._asr

    def start(self) -> None:
        mode = "mock" if self._asr.is_mock else "live"
        logger.info("stt.session.open", extra={"session": self.id, "mode": mode})
        if self._cfg.keepalive_interval_seconds > 0 and self._keepalive is None:
            self._keepalive = asyncio.create_task(self._keepalive_loop(), name=f"stt-keepalive-{self.id}")

    async def close(
        self,
        *,
        code: Optional[int] = None,
        reason: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Release everything the session holds. Safe to call more than once."""

        if self._closed:
            return
        self._closed = True

        context = {"session": self.id, "code": code, "reason": reason or ""}
        if error is not None:
            logger.warning("stt.session.transport_error", extra={**context, "error": repr(error)})
        elif is_lifecycle_close(code, reason):
            logger.debug("stt.session.lifecycle_close", extra=context)
        else:
            logger.info("stt.session.closed", extra=context)

        self._generation += 1
        self.state.pending = None
        self.state.is_processing = False

        tasks = [task for task in self._tasks if not task.done()]
        if self._keepalive is not None and not self._keepalive.done():
            tasks.append(self._keepalive)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
        await self._asr.aclose()

    async def shutdown(self, *, code: int = NORMAL_CLOSURE, reason: str = "Server shutdown") -> None:
        if self._closed:
            return
        try:
            await self._transport.close(code, reason)
        except Exception as exc:
            logger.warning("stt.session.close_failed", extra={"session": self.id, "error": repr(exc)})
        await self.close(code=code, reason=reason)

    async def join(self) -> None:
        """Wait until no processing task is running."""

        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------
    async def handle_message(self, message: RawMessage) -> None:
        if self._closed:
            return
        size = len(message)
        if size == 0:
            logger.debug("stt.session.empty_message", extra={"session": self.id})
            return

        now = self._clock()
        try:
            self._ingestor.check_size(size)
            self._admit(now)
        except FormatError as exc:
            if exc.kind is FormatErrorKind.TOO_SMALL:
                logger.debug("stt.session.too_small", extra={"session": self.id, "bytes": size})
                return
            logger.info("stt.session.too_large", extra={"session": self.id, "bytes": size})
            await self._send(ErrorMessage(error=exc.user_message))
            return
        except SessionError as exc:
            if exc.kind is SessionErrorKind.QUEUE_OVERFLOW:
                replaced = self.state.pending is not None
                self.state.pending = message
                logger.debug("stt.session.coalesced", extra={"session": self.id, "replaced": replaced})
            elif exc.kind is SessionErrorKind.RATE_LIMITED:
                logger.debug("stt.session.rate_limited", extra={"session": self.id})
            else:
                logger.info("stt.session.cooldown_reject", extra={"session": self.id})
                await self._send(ErrorMessage(error=exc.user_message))
            return

        # an admitted message supersedes one left over from an expired cycle
        self.state.pending = None
        self._start_cycle(message, now)

    def _admit(self, now: float) -> None:
        if self.state.is_processing:
            raise SessionError(SessionErrorKind.QUEUE_OVERFLOW, "already processing")
        if self._in_cooldown(now):
            raise _cooldown_error()
        last = self.state.last_processed_at
        if last is not None and now - last < self._cfg.min_interval_seconds:
            raise SessionError(SessionErrorKind.RATE_LIMITED, "minimum interval not elapsed")

    def _in_cooldown(self, now: float) -> bool:
        until = self.state.cooldown_until
        if until is None:
            return False
        if now < until:
            return True
        self.state.cooldown_until = None
        self.state.consecutive_errors = 0
        logger.info("stt.session.cooldown_completed", extra={"session": self.id})
        return False

    # ------------------------------------------------------------------
    # processing
    # ------------------------------------------------------------------
    def _start_cycle(self, message: RawMessage, received_at: float) -> None:
        self._generation += 1
        self.state.is_processing = True
        self.state.last_processed_at = received_at
        self._spawn(self._run(message, received_at, self._generation))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro, name=f"stt-session-{self.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed

    async def _run(self, message: RawMessage, received_at: float, generation: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                watchdog = loop.call_later(
                    self._cfg.processing_timeout_seconds,
                    self._expire_cycle,
                    generation,
                )
                try:
                    await self._process(message, received_at)
                finally:
                    watchdog.cancel()

                if not self._is_current(generation) or self.state.pending is None:
                    return
                await asyncio.sleep(self._cfg.follow_up_delay_seconds)
                if not self._is_current(generation) or self.state.pending is None:
                    return

                message, self.state.pending = self.state.pending, None
                received_at = self._clock()
                if self._in_cooldown(received_at):
                    await self._send(ErrorMessage(error=_cooldown_error().user_message))
                    return
                self.state.last_processed_at = received_at
                logger.debug("stt.session.follow_up", extra={"session": self.id})
        finally:
            if generation == self._generation:
                self.state.is_processing = False

    def _expire_cycle(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        logger.warning(
            "stt.session.processing_timeout",
            extra={"session": self.id, "timeout": self._cfg.processing_timeout_seconds},
        )
        # the stale task keeps running until its own call times out, but no longer owns the session
        self._generation += 1
        self.state.is_processing = False
        if self.state.pending is not None:
            self._spawn(self._resume_pending(self._generation))

    async def _resume_pending(self, generation: int) -> None:
        """Run the message coalesced behind an expired cycle."""

        await asyncio.sleep(self._cfg.follow_up_delay_seconds)
        if not self._is_current(generation) or self.state.is_processing or self.state.pending is None:
            return
        message, self.state.pending = self.state.pending, None
        now = self._clock()
        if self._in_cooldown(now):
            await self._send(ErrorMessage(error=_cooldown_error().user_message))
            return
        logger.debug("stt.session.follow_up", extra={"session": self.id, "after_timeout": True})
        self._start_cycle(message, now)

    async def _process(self, message: RawMessage, received_at: float) -> None:
        try:
            envelope = self._ingestor.from_message(message)
            if self._asr.inspects_audio:
                bundle = await self._preprocessor.normalize(envelope, tag=self.id)
            else:
                bundle = AudioPreprocessor.passthrough(envelope)
            result = await self._asr.transcribe_bundle(bundle)
        except SttError as exc:
            self._record_failure(exc)
            await self._send(ErrorMessage(error=exc.user_message, technical=exc.technical))
            return
        except Exception as exc:
            logger.exception("stt.session.unexpected_error", extra={"session": self.id})
            self._record_failure(exc)
            await self._send(ErrorMessage(error=INTERNAL_USER_MESSAGE))
            return

        self.state.consecutive_errors = 0
        if result.is_empty:
            logger.info("stt.session.no_speech", extra={"session": self.id})
            await self._send(EmptyTranscriptMessage())
            return

        elapsed_ms = max(0, int((self._clock() - received_at) * 1000))
        logger.info(
            "stt.session.transcript",
            extra={"session": self.id, "chars": len(result.text), "elapsed_ms": elapsed_ms},
        )
        await self._send(TranscriptMessage(transcript=result.text, processing_time=elapsed_ms))

    def _record_failure(self, exc: BaseException) -> None:
        self.state.consecutive_errors += 1
        kind = getattr(getattr(exc, "kind", None), "value", type(exc).__name__)
        logger.warning(
            "stt.session.failure",
            extra={"session": self.id, "kind": kind, "consecutive": self.state.consecutive_errors},
        )
        if self.state.consecutive_errors >= self._cfg.max_consecutive_errors and self.state.cooldown_until is None:
            self.state.cooldown_until = self._clock() + self._cfg.cooldown_seconds
            logger.warning(
                "stt.session.cooldown_started",
                extra={"session": self.id, "seconds": self._cfg.cooldown_seconds},
            )

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------
    async def _send(self, message: OutboundMessage) -> None:
        if self._closed:
            return
        try:
            await self._transport.send_json(message.to_wire())
        except Exception as exc:
            logger.warning("stt.session.send_failed", extra={"session": self.id, "error": repr(exc)})

    async def _keepalive_loop(self) -> None:
        interval = self._cfg.keepalive_interval_seconds
        while not self._closed:
            await asyncio.sleep(interval)
            try:
                await self._transport.ping()
            except Exception as exc:
                logger.warning("stt.session.keepalive_failed", extra={"session": self.id, "error": repr(exc)})
                return


class SessionRegistry:
    """Open sessions of this process, used for shutdown and health reporting."""

    def __init__(self) -> None:
        self._sessions: dict[str, SttSession] = {}

    def add(self, session: SttSession) -> None:
        self._sessions[session.id] = session

    def discard(self, session: SttSession) -> None:
        self._sessions.pop(session.id, None)

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[SttSession]:
        return iter(list(self._sessions.values()))

    async def close_all(self, *, code: int = NORMAL_CLOSURE, reason: str = "Server shutdown") -> None:
        sessions = list(self._sessions.values())
        results = await asyncio.gather(
            *(session.shutdown(code=code, reason=reason) for session in sessions),
            return_exceptions=True,
        )
        for session, result in zip(sessions, results):
            if isinstance(result, Exception):
                logger.error("stt.registry.shutdown_failed", extra={"session": session.id, "error": repr(result)})
        self._sessions.clear()


__all__ = [
    "SessionPhase",
    "SessionRegistry",
    "SessionState",
    "SessionTransport",
    "SttSession",
    "is_lifecycle_close",
]
