"""Streaming decode sessions.

A Stream buffers PCM16 audio fed by its owner and decodes it through the
Model that created it. It is terminated exactly once, either by finishing
(decode the whole buffer) or by freeing (drop the buffer undecoded).
"""

import enum
import logging
from typing import TYPE_CHECKING

import numpy as np

from speechstream.audio import AudioInput, bytes_to_samples, to_samples
from speechstream.errors import InvalidStateError
from speechstream.metadata import Metadata

if TYPE_CHECKING:
    from speechstream.model import Model

logger = logging.getLogger(__name__)


class StreamState(enum.Enum):
    OPEN = "open"
    FINISHED = "finished"
    DISCARDED = "discarded"


class Stream:
    """Manages the audio buffer and lifecycle of one streaming inference.

    Create streams with ``Model.create_stream()``. A stream is not safe for
    concurrent use from several threads; different streams are independent.
    Use it as a context manager to guarantee release::

        with model.create_stream() as stream:
            for chunk in chunks:
                stream.feed_audio_content(chunk)
            text = stream.finish_stream()
    """

    def __init__(self, model: "Model", stream_id: int):
        """Initialize a stream. Called by Model.create_stream()."""
        self.stream_id = stream_id
        self._model = model
        self._buffer = bytearray()
        self._state = StreamState.OPEN

    @property
    def model(self) -> "Model":
        """The Model this stream decodes through."""
        return self._model

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is StreamState.OPEN

    @property
    def buffer_bytes(self) -> int:
        """Current buffer size in bytes."""
        return len(self._buffer)

    @property
    def buffer_samples(self) -> int:
        """Current buffer size in samples."""
        return bytes_to_samples(len(self._buffer))

    @property
    def duration(self) -> float:
        """Seconds of audio fed so far."""
        return self.buffer_samples / self._model.sample_rate

    def feed_audio_content(self, audio: AudioInput, sample_rate: int | None = None) -> None:
        """Append audio samples to the stream.

        Args:
            audio: 16-bit mono samples (int16 array, PCM16 bytes, or ints).
                Any length is accepted, including less than one frame.
            sample_rate: Rate of ``audio``, checked against the model if given.

        Raises:
            InvalidStateError: If the stream was already finished or freed.
            InvalidAudioError: If the audio is malformed. The buffer is unchanged.
        """
        self._require_open("feed")
        self._model.check_sample_rate(sample_rate)
        samples = to_samples(audio)
        self._buffer.extend(samples.astype("<i2").tobytes())

    def intermediate_decode(self) -> str | None:
        """Decode the audio fed so far without finishing the stream.

        Each call runs a full decode of the buffer.

        Returns:
            Best partial transcript, or None if the engine failed to decode.
        """
        metadata = self.intermediate_decode_with_metadata(1)
        return None if metadata is None else metadata.text

    def intermediate_decode_with_metadata(self, num_results: int = 1) -> Metadata | None:
        """Like intermediate_decode, returning candidate transcripts with timing."""
        self._require_open("decode")
        return self._model.decode_samples(self._samples(), num_results)

    def finish_stream(self) -> str | None:
        """Decode all buffered audio and close the stream.

        Returns:
            Final transcript ("" for silence), or None if decoding failed.

        Raises:
            InvalidStateError: If the stream was already finished or freed.
        """
        metadata = self.finish_stream_with_metadata(1)
        return None if metadata is None else metadata.text

    def finish_stream_with_metadata(self, num_results: int = 1) -> Metadata | None:
        """Decode all buffered audio and close the stream.

        Args:
            num_results: Maximum number of candidate transcripts to return.

        Returns:
            Candidates ordered best-first, or None if decoding failed.
        """
        self._require_open("finish")
        self._model.check_num_results(num_results)
        try:
            return self._model.decode_samples(self._samples(), num_results)
        finally:
            self._release(StreamState.FINISHED)

    def free_stream(self) -> None:
        """Close the stream without decoding.

        Use this when the result of an ongoing stream is no longer needed
        and the final decode pass can be skipped.
        """
        self._require_open("free")
        self._release(StreamState.DISCARDED)

    def __enter__(self) -> "Stream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_open:
            self.free_stream()

    def __repr__(self) -> str:
        return (
            f"Stream(id={self.stream_id}, state={self._state.value}, "
            f"samples={self.buffer_samples})"
        )

    def _samples(self) -> np.ndarray:
        return np.frombuffer(bytes(self._buffer), dtype="<i2").astype(np.int16)

    def _require_open(self, action: str) -> None:
        if self._state is not StreamState.OPEN:
            raise InvalidStateError(
                f"Cannot {action} stream {self.stream_id}: it is {self._state.value}"
            )

    def _release(self, state: StreamState) -> None:
        self._state = state
        self._buffer = bytearray()
        self._model.release_stream(self)
        logger.debug(f"Stream {self.stream_id} {state.value}")
