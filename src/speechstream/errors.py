"""Exception hierarchy for speechstream."""


class SpeechStreamError(Exception):
    """Base exception for all speechstream errors."""


class ConfigError(SpeechStreamError):
    """Configuration loading or validation error."""


class ModelLoadError(SpeechStreamError):
    """Model artifact is missing, malformed, or incompatible with the engine."""


class ScorerLoadError(SpeechStreamError):
    """External scorer is missing or incompatible with the loaded model."""


class InvalidStateError(SpeechStreamError):
    """Operation is not valid in the current model, scorer, or stream state."""


class ResourceExhaustedError(SpeechStreamError):
    """A new stream could not be allocated."""


class InvalidAudioError(SpeechStreamError, ValueError):
    """Audio is not 16-bit mono PCM at the model's sample rate."""


class DecodeError(SpeechStreamError):
    """Engine failed to decode buffered audio.

    Raised by engine backends only. Model and Stream report it to callers as
    a ``None`` result.
    """
