from __future__ import annotations

"""Client for the external speech-to-text HTTP API."""

import asyncio
import json
import logging
from typing import Any, Optional

import httpx

from ...errors import TranscriptionError, TranscriptionErrorKind
from ..types import AsrOptions, AsrResult
from .base import AsrProvider

logger = logging.getLogger(__name__)

USER_AGENT = "stt-gateway/1.0"
CREDENTIAL_HEADER = "api-subscription-key"

_STATUS_ERRORS: dict[int, tuple[TranscriptionErrorKind, str]] = {
    400: (TranscriptionErrorKind.BAD_AUDIO, "Invalid audio format or corrupted file"),
    401: (TranscriptionErrorKind.AUTH_FAILURE, "Invalid API key - check SARVAM_API_KEY"),
    403: (TranscriptionErrorKind.AUTH_FAILURE, "API access forbidden - check subscription status"),
    413: (TranscriptionErrorKind.PAYLOAD_TOO_LARGE, "Audio file too large for API"),
    429: (TranscriptionErrorKind.RATE_LIMITED, "Rate limit exceeded - please try again in a moment"),
}


def error_for_status(status_code: int, body: str) -> TranscriptionError:
    snippet = body[:200]
    if status_code in _STATUS_ERRORS:
        kind, message = _STATUS_ERRORS[status_code]
    elif status_code >= 500:
        kind, message = TranscriptionErrorKind.UPSTREAM_UNAVAILABLE, "Speech service temporarily unavailable"
    else:
        kind, message = TranscriptionErrorKind.UNEXPECTED_STATUS, "Unexpected response from speech service"
    return TranscriptionError(kind, f"API error {status_code}: {message}. {snippet}".strip(), status_code=status_code)


def error_for_transport(exc: httpx.TransportError) -> TranscriptionError:
    if isinstance(exc, httpx.TimeoutException):
        return TranscriptionError(TranscriptionErrorKind.NETWORK_ERROR, f"Connection timeout: {exc!r}")
    if isinstance(exc, httpx.ConnectError):
        return TranscriptionError(TranscriptionErrorKind.NETWORK_ERROR, f"Cannot reach speech service: {exc!r}")
    return TranscriptionError(TranscriptionErrorKind.NETWORK_ERROR, f"Network error: {exc!r}")


def extract_transcript(payload: Any) -> str:
    if isinstance(payload, dict):
        transcript = payload.get("transcript")
        if isinstance(transcript, str):
            return transcript.strip()
    return ""


class SpeechApiProvider(AsrProvider):
    """Single-shot multipart upload to the speech API.

    Retries are left to the caller. The response body is read in chunks and
    abandoned once it exceeds ``max_response_bytes``.
    """

    name = "speech_api"

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        model: str,
        language_code: str,
        timeout: float = 120.0,
        max_response_bytes: int = 10 * 1024 * 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required for the speech API provider")
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._language_code = language_code
        self._timeout = timeout
        self._max_response_bytes = max_response_bytes
        self._transport = transport

    async def transcribe(self, *, audio: bytes, options: AsrOptions) -> AsrResult:
        files = {"file": (options.filename, audio, options.content_type)}
        data = {
            "model": options.model or self._model,
            "language_code": options.language_code or self._language_code,
        }
        headers = {CREDENTIAL_HEADER: self._api_key, "User-Agent": USER_AGENT}

        logger.info("asr.request.start", extra={"bytes": len(audio), "model": data["model"]})
        try:
            async with asyncio.timeout(self._timeout):
                status_code, body = await self._post(files=files, data=data, headers=headers)
        except TimeoutError as exc:
            raise TranscriptionError(
                TranscriptionErrorKind.TIMEOUT,
                f"API request timeout after {self._timeout:g}s - server taking too long to respond",
            ) from exc
        except httpx.TransportError as exc:
            error = error_for_transport(exc)
            logger.warning("asr.request.transport_error", extra={"error": repr(exc), "kind": error.kind.value})
            raise error from exc

        text_body = body.decode("utf-8", errors="replace")
        if status_code != 200:
            error = error_for_status(status_code, text_body)
            logger.error("asr.request.failed", extra={"status": status_code, "body": text_body[:200]})
            raise error

        try:
            payload = json.loads(text_body)
        except json.JSONDecodeError as exc:
            raise TranscriptionError(
                TranscriptionErrorKind.MALFORMED_RESPONSE,
                f"Response parsing failed: {exc}",
                status_code=status_code,
            ) from exc

        transcript = extract_transcript(payload)
        if not transcript:
            logger.info("asr.request.empty_transcript")
        else:
            logger.info("asr.request.done", extra={"chars": len(transcript)})
        return AsrResult(text=transcript, provider=self.name)

    async def _post(self, *, files: dict, data: dict, headers: dict) -> tuple[int, bytes]:
        timeout = httpx.Timeout(self._timeout)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            async with client.stream("POST", self._api_url, files=files, data=data, headers=headers) as response:
                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self._max_response_bytes:
                        raise TranscriptionError(
                            TranscriptionErrorKind.MALFORMED_RESPONSE,
                            f"Response too large - exceeded {self._max_response_bytes} bytes",
                            status_code=response.status_code,
                        )
                    chunks.append(chunk)
                return response.status_code, b"".join(chunks)


__all__ = ["SpeechApiProvider", "error_for_status", "error_for_transport", "extract_transcript"]
