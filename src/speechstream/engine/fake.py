"""Fake engine for CPU-based testing.

Returns deterministic output based on audio characteristics,
allowing reliable unit tests without torch or model downloads.

The fake "model" artifact is a small JSON file::

    {"architecture": "fake-ctc", "sample_rate": 16000, "frame_ms": 20}
"""

import hashlib
import json
import logging
import time
from pathlib import Path

import numpy as np

from speechstream import __version__
from speechstream.constants import DEFAULT_BEAM_WIDTH, FRAME_MS, SAMPLE_RATE
from speechstream.errors import DecodeError, ModelLoadError, ScorerLoadError
from speechstream.metadata import CandidateTranscript, TokenMetadata

logger = logging.getLogger(__name__)

ARCHITECTURE = "fake-ctc"

# 16 letters, indexed by hex digit
_ALPHABET = "etaoinshrdlucmfw"


def write_fake_model(path: str | Path, sample_rate: int = SAMPLE_RATE, frame_ms: int = FRAME_MS) -> Path:
    """Write a model artifact that FakeEngine accepts."""
    path = Path(path)
    path.write_text(
        json.dumps(
            {"architecture": ARCHITECTURE, "sample_rate": sample_rate, "frame_ms": frame_ms}
        ),
        encoding="utf-8",
    )
    return path


class FakeEngine:
    """Deterministic CPU engine for testing.

    Frames whose RMS energy exceeds ``energy_threshold`` are "voiced".
    Each run of voiced frames becomes one word spelled from a hash of its
    samples, so silence decodes to an empty transcript and the result depends
    only on the full buffer, never on how it was chunked.
    """

    def __init__(
        self,
        latency_ms: float = 0.0,
        energy_threshold: float = 500.0,
        fail_decode: bool = False,
    ):
        """Initialize the fake engine.

        Args:
            latency_ms: Simulated inference latency in milliseconds.
            energy_threshold: RMS level (int16 scale) above which a frame is voiced.
            fail_decode: Make every decode raise DecodeError.
        """
        self._latency_ms = latency_ms
        self._energy_threshold = energy_threshold
        self.fail_decode = fail_decode
        self._call_count = 0

        self._loaded = False
        self._sample_rate = SAMPLE_RATE
        self._frame_samples = SAMPLE_RATE * FRAME_MS // 1000
        self._beam_width = DEFAULT_BEAM_WIDTH
        self._scorer_path: Path | None = None
        self._alpha = 0.0
        self._beta = 0.0

    def load(self, model_path: str) -> None:
        path = Path(model_path)
        if not path.is_file():
            raise ModelLoadError(f"Model not found at {path}")

        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ModelLoadError(f"Malformed model file {path}: {e}") from e

        if not isinstance(manifest, dict) or manifest.get("architecture") != ARCHITECTURE:
            raise ModelLoadError(
                f"Model at {path} is not a {ARCHITECTURE!r} model"
            )

        sample_rate = manifest.get("sample_rate", SAMPLE_RATE)
        frame_ms = manifest.get("frame_ms", FRAME_MS)
        for name, value in (("sample_rate", sample_rate), ("frame_ms", frame_ms)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ModelLoadError(f"Model at {path} has invalid {name}: {value!r}")

        self._sample_rate = sample_rate
        self._frame_samples = max(1, sample_rate * frame_ms // 1000)
        self._loaded = True
        logger.debug(f"Fake model loaded from {path} ({sample_rate} Hz)")

    @property
    def sample_rate(self) -> int:
        self._require_loaded()
        return self._sample_rate

    @property
    def beam_width(self) -> int:
        return self._beam_width

    def set_beam_width(self, beam_width: int) -> None:
        self._beam_width = beam_width

    def enable_scorer(self, scorer_path: str, alpha: float, beta: float) -> None:
        self._require_loaded()
        path = Path(scorer_path)
        if not path.is_file():
            raise ScorerLoadError(f"Scorer not found at {path}")
        if path.stat().st_size == 0:
            raise ScorerLoadError(f"Scorer at {path} is empty")
        self._scorer_path = path
        self._alpha = alpha
        self._beta = beta

    def disable_scorer(self) -> None:
        self._scorer_path = None

    def set_scorer_alpha_beta(self, alpha: float, beta: float) -> None:
        self._alpha = alpha
        self._beta = beta

    def decode(self, samples: np.ndarray, num_results: int) -> list[CandidateTranscript]:
        """Generate deterministic candidates based on audio properties."""
        self._require_loaded()
        if self._latency_ms > 0:
            time.sleep(self._latency_ms / 1000.0)

        self._call_count += 1
        if self.fail_decode:
            raise DecodeError("Simulated decode failure")

        runs = self._voiced_runs(samples)
        if not runs:
            return [CandidateTranscript(tokens=(), confidence=0.0)]

        fs = self._frame_samples
        words = [self._spell(samples[s * fs : e * fs], e - s) for s, e in runs]
        voiced_frames = sum(e - s for s, e in runs)
        confidence = -0.05 * voiced_frames
        if self._scorer_path is not None:
            confidence += (self._beta - 0.5 * self._alpha) * len(words)

        candidates = [CandidateTranscript(self._tokens(runs, words), confidence)]
        limit = min(num_results, self._beam_width)
        for k in range(1, limit):
            if len(words[-1]) <= k:
                break
            variant = words[:-1] + [words[-1][:-k]]
            candidates.append(CandidateTranscript(self._tokens(runs, variant), confidence - k))
        return candidates

    def versions(self) -> dict[str, str]:
        return {"speechstream": __version__, "engine": "fake", "numpy": np.__version__}

    def unload(self) -> None:
        self._loaded = False
        self._scorer_path = None

    @property
    def call_count(self) -> int:
        """Number of decode calls made."""
        return self._call_count

    @property
    def scorer_path(self) -> Path | None:
        return self._scorer_path

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise RuntimeError("Model not loaded. Call load() first.")

    def _voiced_runs(self, samples: np.ndarray) -> list[tuple[int, int]]:
        """Return [start, end) frame ranges of consecutive voiced frames."""
        num_frames = len(samples) // self._frame_samples
        if num_frames == 0:
            return []

        frames = samples[: num_frames * self._frame_samples].astype(np.float64)
        frames = frames.reshape(num_frames, self._frame_samples)
        rms = np.sqrt(np.mean(frames**2, axis=1))
        voiced = rms > self._energy_threshold

        runs: list[tuple[int, int]] = []
        start = None
        for i, is_voiced in enumerate(voiced):
            if is_voiced and start is None:
                start = i
            elif not is_voiced and start is not None:
                runs.append((start, i))
                start = None
        if start is not None:
            runs.append((start, num_frames))
        return runs

    @staticmethod
    def _spell(run: np.ndarray, num_frames: int) -> str:
        """Spell a short word from a hash of the run's samples."""
        digest = hashlib.sha256(run.tobytes()).hexdigest()
        length = min(8, max(2, num_frames))
        return "".join(_ALPHABET[int(c, 16)] for c in digest[:length])

    def _tokens(self, runs: list[tuple[int, int]], words: list[str]) -> tuple[TokenMetadata, ...]:
        """Lay out one token per character, plus a space between words."""
        frame_s = self._frame_samples / self._sample_rate
        placed: list[tuple[str, int]] = []
        for n, ((start, end), word) in enumerate(zip(runs, words)):
            if n > 0:
                # The previous run ended on a silent frame; the space sits there.
                placed.append((" ", runs[n - 1][1]))
            step = max(1, (end - start) // max(1, len(word)))
            for i, char in enumerate(word):
                placed.append((char, min(start + i * step, end - 1)))

        tokens = []
        for i, (text, timestep) in enumerate(placed):
            if i + 1 < len(placed):
                duration = (placed[i + 1][1] - timestep) * frame_s
            else:
                duration = frame_s
            tokens.append(TokenMetadata(text, timestep, timestep * frame_s, duration))
        return tuple(tokens)
