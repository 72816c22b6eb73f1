import struct

import pytest

from stt_gateway.audio import inspector
from stt_gateway.audio.inspector import FormatInspector, InspectLimits
from stt_gateway.audio.types import TargetProfile, ValidationLevel
from stt_gateway.errors import FormatError, FormatErrorKind


def test_inspect_reads_canonical_header(make_wav):
    info = inspector.inspect(make_wav(frames=16000))

    assert info.audio_format == 1
    assert info.sample_rate == 16000
    assert info.channels == 1
    assert info.bits_per_sample == 16
    assert info.byte_rate == 32000
    assert info.block_align == 2
    assert info.format_chunk_size == 16
    assert info.duration_seconds == pytest.approx(1.0)


def test_inspect_rejects_small_buffer_without_parsing():
    with pytest.raises(FormatError) as exc_info:
        inspector.inspect(b"RIFF" + b"\x00" * 496)

    assert exc_info.value.kind is FormatErrorKind.TOO_SMALL


@pytest.mark.parametrize("length", [0, 1, 43])
def test_buffers_shorter_than_header_are_too_small(length):
    buffer = b"RIFF\x00\x00\x00\x00WAVE"[:length].ljust(length, b"\x00")
    unlimited = FormatInspector(profile=TargetProfile(), limits=InspectLimits(min_bytes=0))

    for parse in (
        inspector.inspect,
        inspector.parse_header,
        lambda data: unlimited.inspect(data, enforce_limits=False),
    ):
        with pytest.raises(FormatError) as exc_info:
            parse(buffer)
        assert exc_info.value.kind is FormatErrorKind.TOO_SMALL


def test_inspect_rejects_buffer_over_limit(make_wav):
    with pytest.raises(FormatError) as exc_info:
        inspector.inspect(make_wav(), limits=InspectLimits(min_bytes=44, max_bytes=2000))

    assert exc_info.value.kind is FormatErrorKind.TOO_LARGE


def test_parse_header_rejects_bad_signature(make_wav):
    buffer = b"RIFX" + make_wav()[4:]

    with pytest.raises(FormatError) as exc_info:
        inspector.parse_header(buffer)

    assert exc_info.value.kind is FormatErrorKind.BAD_SIGNATURE
    assert exc_info.value.detail == "Invalid RIFF signature"


def test_parse_header_rejects_missing_wave_tag(make_wav):
    wav = make_wav()
    buffer = wav[:8] + b"AVI " + wav[12:]

    with pytest.raises(FormatError) as exc_info:
        inspector.parse_header(buffer)

    assert exc_info.value.detail == "Invalid WAVE signature"


def test_parse_header_skips_chunks_before_fmt(make_wav):
    wav = make_wav(extra_chunks=((b"LIST", b"INFOabcd"),))

    info = inspector.parse_header(wav)

    assert info.sample_rate == 16000
    assert info.channels == 1


def test_parse_header_reports_missing_fmt_chunk():
    data = b"\x00" * 2000
    body = b"WAVE" + b"data" + struct.pack("<I", len(data)) + data
    buffer = b"RIFF" + struct.pack("<I", len(body)) + body

    with pytest.raises(FormatError) as exc_info:
        inspector.parse_header(buffer)

    assert exc_info.value.kind is FormatErrorKind.MISSING_FORMAT_CHUNK


def test_quick_validate_checks_signatures_only(make_wav):
    assert inspector.quick_validate(make_wav())
    assert not inspector.quick_validate(b"RIFF" * 4)
    assert not inspector.quick_validate(b"OggS" + make_wav()[4:])


def test_validate_accepts_target_profile(make_wav):
    info = inspector.parse_header(make_wav())

    verdict = inspector.validate(info, TargetProfile(), ValidationLevel.STRICT)

    assert verdict.is_valid
    assert verdict.errors == ()
    assert verdict.warnings == ()
    assert not verdict.requires_fix


def test_validate_standard_warns_on_profile_mismatch(make_wav):
    info = inspector.parse_header(make_wav(sample_rate=22050, channels=2))

    verdict = inspector.validate(info, TargetProfile(), ValidationLevel.STANDARD)

    assert verdict.is_valid
    assert verdict.warnings == (
        "Sample rate 22050Hz, preferred: 16000Hz",
        "Channel count 2, preferred: 1",
    )
    assert not verdict.requires_fix


def test_validate_strict_rejects_profile_mismatch(make_wav):
    info = inspector.parse_header(make_wav(sample_rate=22050, channels=2))

    verdict = inspector.validate(info, TargetProfile(), ValidationLevel.STRICT)

    assert not verdict.is_valid
    assert len(verdict.errors) == 2
    assert verdict.requires_fix


def test_validate_basic_ignores_profile_mismatch(make_wav):
    info = inspector.parse_header(make_wav(sample_rate=44100, channels=2, bits=24))

    verdict = inspector.validate(info, TargetProfile(), ValidationLevel.BASIC)

    assert verdict.is_valid
    assert verdict.warnings == ()


@pytest.mark.parametrize("level", list(ValidationLevel))
def test_validate_rejects_non_pcm_at_every_level(make_wav, level):
    info = inspector.parse_header(make_wav(audio_format=3, bits=32))

    verdict = inspector.validate(info, TargetProfile(), level)

    assert not verdict.is_valid
    assert any("Unsupported audio format: 3" in error for error in verdict.errors)


def test_validate_rejects_long_audio(make_wav):
    info = inspector.parse_header(make_wav(frames=16000))

    verdict = inspector.validate(info, TargetProfile(), max_duration_seconds=0.5)

    assert not verdict.is_valid
    assert verdict.errors[0].startswith("Audio too long")


def test_validate_warns_on_byte_rate_mismatch(make_wav):
    wav = bytearray(make_wav())
    struct.pack_into("<I", wav, 28, 12345)
    info = inspector.parse_header(bytes(wav))

    verdict = inspector.validate(info, TargetProfile())

    assert verdict.is_valid
    assert verdict.warnings == ("Byte rate mismatch: 12345 vs expected 32000",)


def test_format_inspector_can_skip_size_limits(make_wav):
    checker = FormatInspector(profile=TargetProfile(), limits=InspectLimits(min_bytes=10_000))
    wav = make_wav(frames=100)

    with pytest.raises(FormatError):
        checker.inspect(wav)

    info = checker.inspect(wav, enforce_limits=False)
    assert info.sample_rate == 16000
