"""Streaming speech-to-text client: model handle, streams, and scorer."""

__version__ = "0.1.0"

from speechstream.config import ModelConfig
from speechstream.constants import (
    CHUNK_BYTES,
    CHUNK_SAMPLES,
    FRAME_SAMPLES,
    SAMPLE_RATE,
)
from speechstream.errors import (
    ConfigError,
    DecodeError,
    InvalidAudioError,
    InvalidStateError,
    ModelLoadError,
    ResourceExhaustedError,
    ScorerLoadError,
    SpeechStreamError,
)
from speechstream.metadata import CandidateTranscript, Metadata, TokenMetadata
from speechstream.model import Model
from speechstream.scorer import ExternalScorer
from speechstream.stream import Stream, StreamState

__all__ = [
    "SAMPLE_RATE",
    "FRAME_SAMPLES",
    "CHUNK_SAMPLES",
    "CHUNK_BYTES",
    "ModelConfig",
    "Model",
    "Stream",
    "StreamState",
    "ExternalScorer",
    "Metadata",
    "CandidateTranscript",
    "TokenMetadata",
    "SpeechStreamError",
    "ConfigError",
    "ModelLoadError",
    "ScorerLoadError",
    "InvalidStateError",
    "InvalidAudioError",
    "ResourceExhaustedError",
    "DecodeError",
]
