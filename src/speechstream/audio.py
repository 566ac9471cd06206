"""Audio conversion, validation and chunking utilities.

All functions work with mono PCM16 audio as bytes, int16 numpy arrays, or
float32 numpy arrays normalized to [-1, 1].
"""

from collections.abc import Iterator, Sequence

import numpy as np

from speechstream.constants import BYTES_PER_SAMPLE, INT16_MAX, INT16_MIN, SAMPLE_RATE
from speechstream.errors import InvalidAudioError

AudioInput = np.ndarray | bytes | bytearray | memoryview | Sequence[int]


def to_samples(audio: AudioInput) -> np.ndarray:
    """Validate caller audio and return a private int16 copy.

    Args:
        audio: 1-D int16 numpy array, PCM16 little-endian bytes, or a
            sequence of ints within the int16 range.

    Returns:
        Contiguous 1-D int16 numpy array owned by the caller of this function.

    Raises:
        InvalidAudioError: If the input is not 16-bit mono PCM.
    """
    if isinstance(audio, (bytes, bytearray, memoryview)):
        data = bytes(audio)
        if not validate_audio_format(data):
            raise InvalidAudioError(
                f"PCM16 data must have an even byte length, got {len(data)} bytes"
            )
        return np.frombuffer(data, dtype="<i2").astype(np.int16)

    if isinstance(audio, np.ndarray):
        if audio.dtype != np.int16:
            raise InvalidAudioError(
                f"Audio array must have dtype int16, got {audio.dtype}"
            )
        if audio.ndim != 1:
            raise InvalidAudioError(
                f"Audio array must be 1-D (mono), got shape {audio.shape}"
            )
        return np.array(audio, dtype=np.int16, copy=True)

    if isinstance(audio, str) or not isinstance(audio, Sequence):
        raise InvalidAudioError(f"Unsupported audio type: {type(audio).__name__}")

    if len(audio) == 0:
        return np.zeros(0, dtype=np.int16)
    try:
        wide = np.asarray(audio)
    except ValueError as e:
        raise InvalidAudioError(f"Audio samples must be a flat sequence: {e}") from e
    if wide.ndim != 1:
        raise InvalidAudioError(f"Audio must be 1-D (mono), got shape {wide.shape}")
    if not np.issubdtype(wide.dtype, np.integer):
        raise InvalidAudioError(f"Audio samples must be integers, got {wide.dtype}")
    if wide.min() < INT16_MIN or wide.max() > INT16_MAX:
        raise InvalidAudioError("Audio samples must be within the int16 range")
    return wide.astype(np.int16)


def pcm16_to_float32(data: bytes | np.ndarray) -> np.ndarray:
    """Convert PCM16 audio to float32 array normalized to [-1, 1].

    Args:
        data: Raw PCM16 little-endian audio bytes, or an int16 array.

    Returns:
        Float32 numpy array with values in [-1, 1].
    """
    if isinstance(data, np.ndarray):
        audio = data.astype(np.float32)
    else:
        audio = np.frombuffer(data, dtype=np.int16).astype(np.float32)
    audio /= 32768.0
    return audio


def chunk_audio(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Split audio bytes into fixed-size chunks.

    Args:
        data: Raw PCM16 audio bytes.
        chunk_size: Size of each chunk in bytes.

    Yields:
        Chunks of the specified size. The last chunk may be smaller.
    """
    for i in range(0, len(data), chunk_size):
        yield data[i : i + chunk_size]


def validate_audio_format(data: bytes) -> bool:
    """Check if audio data has valid PCM16 format.

    Args:
        data: Raw audio bytes to validate.

    Returns:
        True if data length is even (valid PCM16), False otherwise.
    """
    return len(data) % BYTES_PER_SAMPLE == 0


def samples_to_bytes(num_samples: int) -> int:
    """Convert sample count to byte count for PCM16."""
    return num_samples * BYTES_PER_SAMPLE


def bytes_to_samples(num_bytes: int) -> int:
    """Convert byte count to sample count for PCM16."""
    return num_bytes // BYTES_PER_SAMPLE


def duration_samples(duration_ms: int, sample_rate: int = SAMPLE_RATE) -> int:
    """Calculate number of samples for a given duration in milliseconds."""
    return sample_rate * duration_ms // 1000


def duration_bytes(duration_ms: int, sample_rate: int = SAMPLE_RATE) -> int:
    """Calculate number of bytes for a given duration in milliseconds."""
    return samples_to_bytes(duration_samples(duration_ms, sample_rate))
