"""Engine protocol defining the interface for STT inference backends.

This is the "sealed boundary" that isolates the acoustic model, the CTC
decoder and the language model scorer from the contract layer (Model,
Stream, ExternalScorer) and from tests.
"""

from typing import Protocol

import numpy as np

from speechstream.metadata import CandidateTranscript


class Engine(Protocol):
    """Protocol for speech-to-text inference engines.

    Implementations own the loaded model and decoder. They hold no per-stream
    state: streams buffer their own audio and hand the whole buffer to
    ``decode``. This allows swapping between the real torch engine and the
    fake CPU engine for testing.

    ``decode`` must be thread-safe: streams of one model may decode
    concurrently from different threads.
    """

    def load(self, model_path: str) -> None:
        """Load and validate a model artifact.

        Raises:
            ModelLoadError: If the path is missing, malformed, or incompatible.
        """
        ...

    @property
    def sample_rate(self) -> int:
        """Sample rate (Hz) the loaded model requires."""
        ...

    @property
    def beam_width(self) -> int:
        """Current decoder beam width."""
        ...

    def set_beam_width(self, beam_width: int) -> None:
        """Change the decoder beam width."""
        ...

    def enable_scorer(self, scorer_path: str, alpha: float, beta: float) -> None:
        """Attach an external scorer with the given weights.

        Raises:
            ScorerLoadError: If the scorer cannot be loaded for this model.
        """
        ...

    def disable_scorer(self) -> None:
        """Detach the external scorer."""
        ...

    def set_scorer_alpha_beta(self, alpha: float, beta: float) -> None:
        """Update the weights of the attached scorer."""
        ...

    def decode(self, samples: np.ndarray, num_results: int) -> list[CandidateTranscript]:
        """Decode a full buffer of audio.

        Args:
            samples: 1-D int16 array at ``sample_rate``.
            num_results: Maximum number of candidate transcripts to return.

        Returns:
            Up to ``num_results`` candidates, best first. Silence yields a
            single candidate with no tokens.

        Raises:
            DecodeError: If inference fails.
        """
        ...

    def versions(self) -> dict[str, str]:
        """Versions of the engine and the libraries behind it."""
        ...

    def unload(self) -> None:
        """Release all model and decoder resources."""
        ...
