import base64
import json

import pytest

from stt_gateway.audio.ingest import AudioIngestor, IngestLimits, decode_base64
from stt_gateway.errors import EnvelopeError, FormatError, FormatErrorKind


def _ingestor() -> AudioIngestor:
    return AudioIngestor(limits=IngestLimits(min_bytes=1000, max_bytes=50 * 1024 * 1024))


def test_from_message_decodes_json_envelope(make_wav):
    wav = make_wav()
    message = json.dumps(
        {
            "audio": base64.b64encode(wav).decode("ascii"),
            "mimeType": "audio/wav",
            "timestamp": "2024-05-01T10:00:00.000Z",
            "metadata": {"duration": 0.1, "sampleRate": 16000, "channels": 1},
        }
    )

    envelope = _ingestor().from_message(message)

    assert envelope.payload == wav
    assert envelope.declared_mime_type == "audio/wav"
    assert envelope.timestamp is not None and envelope.timestamp.year == 2024
    assert envelope.metadata.sample_rate == 16000
    assert envelope.metadata.duration_seconds == pytest.approx(0.1)


def test_from_message_tolerates_bad_timestamp_and_metadata(make_wav):
    message = json.dumps(
        {
            "audio": base64.b64encode(make_wav()).decode("ascii"),
            "mimeType": "audio/webm",
            "timestamp": "yesterday",
            "metadata": "n/a",
        }
    )

    envelope = _ingestor().from_message(message)

    assert envelope.timestamp is None
    assert envelope.metadata is None
    assert envelope.declared_mime_type == "audio/webm"


def test_from_message_accepts_raw_base64_text(make_wav):
    wav = make_wav()
    encoded = base64.b64encode(wav).decode("ascii")

    envelope = _ingestor().from_message(encoded)

    assert envelope.payload == wav
    assert envelope.declared_mime_type == "audio/wav"


def test_from_message_accepts_binary_frame(make_wav):
    wav = make_wav()

    envelope = _ingestor().from_message(wav)

    assert envelope.payload == wav


def test_decode_base64_is_lenient(make_wav):
    wav = make_wav(frames=10)
    encoded = base64.b64encode(wav).decode("ascii")
    wrapped = "data:audio/wav;base64," + "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))

    assert decode_base64(wrapped.rstrip("=")) == wav


def test_decode_base64_rejects_garbage():
    with pytest.raises(EnvelopeError):
        decode_base64("abcde")


def test_check_size_reports_too_large_with_user_message():
    ingestor = AudioIngestor(limits=IngestLimits(min_bytes=10, max_bytes=2 * 1024 * 1024))

    with pytest.raises(FormatError) as exc_info:
        ingestor.check_size(3 * 1024 * 1024)

    assert exc_info.value.kind is FormatErrorKind.TOO_LARGE
    assert exc_info.value.user_message == "Audio file too large (max 2MB)"


def test_check_size_reports_too_small():
    with pytest.raises(FormatError) as exc_info:
        _ingestor().check_size(999)

    assert exc_info.value.kind is FormatErrorKind.TOO_SMALL
    _ingestor().check_size(1000)
