from __future__ import annotations

"""Runtime configuration helpers for stt-gateway."""

import os
import shutil
import tempfile
from dataclasses import dataclass

_BOOL_TRUTHY = {"1", "true", "yes", "on"}

PLACEHOLDER_API_KEYS = {"", "YOUR_API_KEY_HERE"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _BOOL_TRUTHY


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class ServerSettings:
    host: str
    port: int
    ws_path: str
    log_level: str
    log_file: str | None


@dataclass(frozen=True)
class AudioSettings:
    target_sample_rate: int
    target_channels: int
    target_bit_depth: int
    min_bytes: int
    max_bytes: int
    max_duration_seconds: float
    validation_level: str
    auto_fix: bool
    ffmpeg_path: str
    correction_timeout_seconds: float
    temp_dir: str


@dataclass(frozen=True)
class AsrSettings:
    api_key: str | None
    api_url: str
    model: str
    language_code: str
    timeout: float
    max_response_bytes: int
    mock_latency_seconds: float

    @property
    def has_credential(self) -> bool:
        return (self.api_key or "").strip() not in PLACEHOLDER_API_KEYS


@dataclass(frozen=True)
class SessionSettings:
    min_interval_seconds: float
    max_consecutive_errors: int
    cooldown_seconds: float
    follow_up_delay_seconds: float
    processing_timeout_seconds: float
    keepalive_interval_seconds: float


@dataclass(frozen=True)
class Settings:
    server: ServerSettings
    audio: AudioSettings
    asr: AsrSettings
    session: SessionSettings


def load_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""

    server_settings = ServerSettings(
        host=os.getenv("STT_HOST", "0.0.0.0"),
        port=_env_int("STT_PORT", 5000),
        ws_path=os.getenv("STT_WS_PATH", "/ws/stt"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE") or None,
    )

    audio_settings = AudioSettings(
        target_sample_rate=_env_int("AUDIO_TARGET_SAMPLE_RATE", 16000),
        target_channels=_env_int("AUDIO_TARGET_CHANNELS", 1),
        target_bit_depth=_env_int("AUDIO_TARGET_BIT_DEPTH", 16),
        min_bytes=_env_int("AUDIO_MIN_BYTES", 1000),
        max_bytes=_env_int("AUDIO_MAX_BYTES", 50 * 1024 * 1024),
        max_duration_seconds=_env_float("AUDIO_MAX_DURATION_SECONDS", 600.0),
        validation_level=os.getenv("AUDIO_VALIDATION_LEVEL", "standard").strip().lower(),
        auto_fix=_env_bool("AUDIO_AUTO_FIX", True),
        ffmpeg_path=os.getenv("FFMPEG_PATH") or shutil.which("ffmpeg") or "ffmpeg",
        correction_timeout_seconds=_env_float("AUDIO_CORRECTION_TIMEOUT_SECONDS", 60.0),
        temp_dir=os.getenv("AUDIO_TEMP_DIR") or os.path.join(tempfile.gettempdir(), "stt-gateway"),
    )

    asr_settings = AsrSettings(
        api_key=os.getenv("SARVAM_API_KEY"),
        api_url=os.getenv("SARVAM_API_URL", "https://api.sarvam.ai/speech-to-text"),
        model=os.getenv("ASR_MODEL", "saarika:v2.5"),
        language_code=os.getenv("ASR_LANGUAGE_CODE", "hi-IN"),
        timeout=_env_float("SARVAM_TIMEOUT", 120.0),
        max_response_bytes=_env_int("ASR_MAX_RESPONSE_BYTES", 10 * 1024 * 1024),
        mock_latency_seconds=_env_float("ASR_MOCK_LATENCY_SECONDS", 1.5),
    )

    session_settings = SessionSettings(
        min_interval_seconds=_env_int("SESSION_MIN_INTERVAL_MS", 1000) / 1000.0,
        max_consecutive_errors=_env_int("SESSION_MAX_CONSECUTIVE_ERRORS", 5),
        cooldown_seconds=_env_float("SESSION_COOLDOWN_SECONDS", 30.0),
        follow_up_delay_seconds=_env_int("SESSION_FOLLOW_UP_DELAY_MS", 500) / 1000.0,
        processing_timeout_seconds=_env_float("SESSION_PROCESSING_TIMEOUT_SECONDS", 180.0),
        keepalive_interval_seconds=_env_float("SESSION_KEEPALIVE_INTERVAL_SECONDS", 30.0),
    )

    return Settings(
        server=server_settings,
        audio=audio_settings,
        asr=asr_settings,
        session=session_settings,
    )


settings = load_settings()

__all__ = [
    "Settings",
    "ServerSettings",
    "AudioSettings",
    "AsrSettings",
    "SessionSettings",
    "PLACEHOLDER_API_KEYS",
    "settings",
    "load_settings",
]
