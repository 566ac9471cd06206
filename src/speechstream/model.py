"""Model handle: owns a loaded engine and creates streams.

The Model is the single owner of the engine's resources. Streams keep a
back-reference to the Model that created it, and the Model refuses to close
while any of them is still open.
"""

import itertools
import logging
import threading
from pathlib import Path

import numpy as np

from speechstream.audio import AudioInput
from speechstream.config import ModelConfig
from speechstream.engine.protocol import Engine
from speechstream.errors import (
    DecodeError,
    InvalidAudioError,
    InvalidStateError,
    ModelLoadError,
    ResourceExhaustedError,
    SpeechStreamError,
)
from speechstream.metadata import Metadata
from speechstream.scorer import ExternalScorer
from speechstream.stream import Stream

logger = logging.getLogger(__name__)


class Model:
    """A loaded speech-to-text model.

    Loading happens in the constructor; if it fails, ``ModelLoadError`` is
    raised and nothing is left to release. Release the model with
    ``close()`` or by using it as a context manager::

        with Model("models/wav2vec2") as model:
            model.enable_external_scorer("models/lm.binary")
            text = model.stt(samples)

    All calls block the calling thread for the duration of inference.
    Scorer and beam width changes must not race with decodes in flight.
    """

    def __init__(
        self,
        model_path: str | Path,
        engine: Engine | None = None,
        config: ModelConfig | None = None,
    ):
        """Load a model.

        Args:
            model_path: Path to the model artifact understood by the engine.
            engine: Inference backend. Defaults to Wav2Vec2Engine.
            config: Decoder settings. Defaults to ModelConfig().

        Raises:
            ModelLoadError: If the model is missing, malformed, or incompatible.
        """
        self._config = config or ModelConfig()
        if engine is None:
            from speechstream.engine.wav2vec2 import Wav2Vec2Engine

            engine = Wav2Vec2Engine(device=self._config.device)
        self._engine = engine

        path = Path(model_path)
        logger.info(f"Loading model from {path}")
        try:
            engine.load(str(path))
            engine.set_beam_width(self._config.beam_width)
            self._sample_rate = engine.sample_rate
        except SpeechStreamError:
            engine.unload()
            raise
        except Exception as e:
            engine.unload()
            raise ModelLoadError(f"Cannot load model from {path}: {e}") from e

        self._scorer = ExternalScorer(
            engine, self._config.default_alpha, self._config.default_beta
        )
        self._lock = threading.Lock()
        self._streams: dict[int, Stream] = {}
        self._stream_ids = itertools.count(1)
        self._closed = False
        logger.info(f"Model loaded from {path} ({self._sample_rate} Hz)")

    @property
    def sample_rate(self) -> int:
        """Sample rate (Hz) audio must have. Fixed for the model's lifetime."""
        return self._sample_rate

    @property
    def beam_width(self) -> int:
        self._require_open()
        return self._engine.beam_width

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def scorer(self) -> ExternalScorer:
        """The external scorer binding (alpha, beta, enabled, path)."""
        return self._scorer

    @property
    def scorer_enabled(self) -> bool:
        return self._scorer.enabled

    @property
    def open_streams(self) -> int:
        """Number of streams created by this model that are still open."""
        with self._lock:
            return len(self._streams)

    @property
    def closed(self) -> bool:
        return self._closed

    def set_beam_width(self, beam_width: int) -> None:
        """Change the decoder beam width used by subsequent decodes."""
        self._require_open()
        if beam_width < 1:
            raise ValueError(f"beam_width must be >= 1, got {beam_width}")
        self._engine.set_beam_width(beam_width)

    def enable_external_scorer(self, scorer_path: str | Path) -> None:
        """Decode with an external language model scorer.

        Raises:
            ScorerLoadError: If the scorer is missing or incompatible.
        """
        self._require_open()
        self._scorer.enable(scorer_path)

    def disable_external_scorer(self) -> None:
        """Stop decoding with the external scorer.

        Raises:
            InvalidStateError: If no scorer is enabled.
        """
        self._require_open()
        self._scorer.disable()

    def set_scorer_alpha_beta(self, alpha: float, beta: float) -> None:
        """Set the scorer's language model weight (alpha) and word insertion weight (beta).

        Raises:
            InvalidStateError: If no scorer is enabled.
        """
        self._require_open()
        self._scorer.set_alpha_beta(alpha, beta)

    def stt(self, audio: AudioInput, sample_rate: int | None = None) -> str | None:
        """Transcribe a complete audio buffer.

        Equivalent to creating a stream, feeding it ``audio`` and finishing it.

        Returns:
            Transcript ("" when nothing was recognized), or None if decoding failed.
        """
        with self.create_stream(sample_rate) as stream:
            stream.feed_audio_content(audio)
            return stream.finish_stream()

    def stt_with_metadata(
        self,
        audio: AudioInput,
        num_results: int = 1,
        sample_rate: int | None = None,
    ) -> Metadata | None:
        """Transcribe a complete audio buffer, returning candidates with timing."""
        with self.create_stream(sample_rate) as stream:
            stream.feed_audio_content(audio)
            return stream.finish_stream_with_metadata(num_results)

    def create_stream(self, sample_rate: int | None = None) -> Stream:
        """Create a new streaming inference state.

        Raises:
            ResourceExhaustedError: If the stream limit is reached or memory
                cannot be allocated.
        """
        self._require_open()
        self.check_sample_rate(sample_rate)

        with self._lock:
            # close() may have run since the first check
            self._require_open()
            limit = self._config.max_streams
            if limit and len(self._streams) >= limit:
                raise ResourceExhaustedError(f"Stream limit reached ({limit} open streams)")
            try:
                stream = Stream(self, next(self._stream_ids))
            except MemoryError as e:
                raise ResourceExhaustedError("Could not allocate stream state") from e
            self._streams[stream.stream_id] = stream

        logger.debug(f"Stream {stream.stream_id} created")
        return stream

    def versions(self) -> dict[str, str]:
        """Versions of speechstream, the engine, and its libraries."""
        self._require_open()
        return self._engine.versions()

    def close(self) -> None:
        """Release the engine.

        Raises:
            InvalidStateError: If the model is already closed or streams it
                created are still open.
        """
        with self._lock:
            if self._closed:
                raise InvalidStateError("Model is already closed")
            if self._streams:
                raise InvalidStateError(
                    f"Cannot close model: {len(self._streams)} stream(s) still open"
                )
            self._closed = True

        if self._scorer.enabled:
            self._scorer.disable()
        self._engine.unload()
        logger.info("Model closed")

    def __enter__(self) -> "Model":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Model({state}, sample_rate={self._sample_rate}, scorer={self.scorer_enabled})"

    def check_sample_rate(self, sample_rate: int | None) -> None:
        """Reject audio declared at a rate other than the model's."""
        if sample_rate is not None and sample_rate != self._sample_rate:
            raise InvalidAudioError(
                f"Audio sample rate {sample_rate} Hz does not match model rate "
                f"{self._sample_rate} Hz; resample before decoding"
            )

    @staticmethod
    def check_num_results(num_results: int) -> None:
        if num_results < 1:
            raise ValueError(f"num_results must be >= 1, got {num_results}")

    def decode_samples(self, samples: np.ndarray, num_results: int) -> Metadata | None:
        """Run the engine over ``samples``. Engine failures become None."""
        self.check_num_results(num_results)
        try:
            candidates = self._engine.decode(samples, num_results)
        except DecodeError as e:
            logger.warning(f"Decode failed on {len(samples)} samples: {e}")
            return None
        return Metadata(tuple(candidates[:num_results]))

    def release_stream(self, stream: Stream) -> None:
        """Forget a stream that reached a terminal state."""
        with self._lock:
            self._streams.pop(stream.stream_id, None)

    def _require_open(self) -> None:
        if self._closed:
            raise InvalidStateError("Model has been closed")
