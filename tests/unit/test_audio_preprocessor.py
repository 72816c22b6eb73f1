import pytest

from stt_gateway.audio.corrector import FormatCorrector
from stt_gateway.audio.inspector import FormatInspector
from stt_gateway.audio.preprocessor import AudioPreprocessor
from stt_gateway.audio.types import AudioEnvelope, TargetProfile, ValidationLevel
from stt_gateway.errors import FormatError, FormatErrorKind


def _preprocessor(mocker, *, level=ValidationLevel.STANDARD, fixed: bytes = b"", auto_fix=True):
    corrector = mocker.create_autospec(FormatCorrector, instance=True)
    corrector.fix.return_value = fixed
    inspector = FormatInspector(profile=TargetProfile(), level=level)
    return AudioPreprocessor(inspector=inspector, corrector=corrector, auto_fix=auto_fix), corrector


@pytest.mark.asyncio
async def test_normalize_passes_valid_audio_through(mocker, make_wav):
    wav = make_wav(sample_rate=22050, channels=2)
    preprocessor, corrector = _preprocessor(mocker)

    bundle = await preprocessor.normalize(AudioEnvelope(payload=wav))

    assert bundle.data == wav
    assert bundle.content_type == "audio/wav"
    assert not bundle.was_corrected
    assert len(bundle.warnings) == 2
    corrector.fix.assert_not_called()


@pytest.mark.asyncio
async def test_normalize_corrects_strict_mismatch(mocker, make_wav):
    fixed = make_wav(frames=200)
    preprocessor, corrector = _preprocessor(mocker, level=ValidationLevel.STRICT, fixed=fixed)

    bundle = await preprocessor.normalize(AudioEnvelope(payload=make_wav(sample_rate=22050, channels=2)), tag="s1")

    assert bundle.was_corrected
    assert bundle.data == fixed
    assert bundle.format.sample_rate == 16000
    assert bundle.verdict.is_valid
    corrector.fix.assert_awaited_once()
    assert corrector.fix.await_args.kwargs == {"tag": "s1"}


@pytest.mark.asyncio
async def test_normalize_without_auto_fix_rejects_invalid_audio(mocker, make_wav):
    preprocessor, corrector = _preprocessor(mocker, level=ValidationLevel.STRICT, auto_fix=False)

    with pytest.raises(FormatError) as exc_info:
        await preprocessor.normalize(AudioEnvelope(payload=make_wav(sample_rate=8000)))

    assert exc_info.value.kind is FormatErrorKind.UNSUPPORTED_FORMAT
    corrector.fix.assert_not_called()


@pytest.mark.asyncio
async def test_normalize_fails_when_corrected_output_is_unreadable(mocker, make_wav):
    preprocessor, _ = _preprocessor(mocker, fixed=b"\x00" * 2000)

    with pytest.raises(FormatError) as exc_info:
        await preprocessor.normalize(AudioEnvelope(payload=make_wav(audio_format=3, bits=32)))

    assert exc_info.value.kind is FormatErrorKind.CORRECTION_FAILED


@pytest.mark.asyncio
async def test_normalize_fails_when_correction_does_not_help(mocker, make_wav):
    still_float = make_wav(audio_format=3, bits=32)
    preprocessor, _ = _preprocessor(mocker, fixed=still_float)

    with pytest.raises(FormatError) as exc_info:
        await preprocessor.normalize(AudioEnvelope(payload=still_float))

    assert exc_info.value.kind is FormatErrorKind.CORRECTION_FAILED
    assert exc_info.value.detail.startswith("WAV format could not be corrected automatically")


@pytest.mark.asyncio
async def test_normalize_does_not_correct_unparsable_input(mocker):
    preprocessor, corrector = _preprocessor(mocker)

    with pytest.raises(FormatError) as exc_info:
        await preprocessor.normalize(AudioEnvelope(payload=b"OggS" + b"\x00" * 2000))

    assert exc_info.value.kind is FormatErrorKind.BAD_SIGNATURE
    corrector.fix.assert_not_called()


def test_passthrough_keeps_declared_type():
    bundle = AudioPreprocessor.passthrough(AudioEnvelope(payload=b"abc", declared_mime_type="audio/webm"))

    assert bundle.data == b"abc"
    assert bundle.content_type == "audio/webm"
    assert bundle.format is None
