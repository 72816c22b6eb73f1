"""Audio ingestion, inspection and correction."""

from .corrector import FormatCorrector
from .ingest import AudioIngestor, IngestLimits
from .inspector import FormatInspector, InspectLimits
from .preprocessor import AudioPreprocessor
from .types import (
    AudioBundle,
    AudioEnvelope,
    AudioMetadata,
    FormatInfo,
    TargetProfile,
    ValidationLevel,
    ValidationVerdict,
)

__all__ = [
    "AudioBundle",
    "AudioEnvelope",
    "AudioIngestor",
    "AudioMetadata",
    "AudioPreprocessor",
    "FormatCorrector",
    "FormatInfo",
    "FormatInspector",
    "IngestLimits",
    "InspectLimits",
    "TargetProfile",
    "ValidationLevel",
    "ValidationVerdict",
]
