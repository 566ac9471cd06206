"""Real engine using a CTC acoustic model via transformers and torch.

Emissions are decoded by torchaudio's flashlight CTC beam search decoder.
The external scorer is a KenLM language model handed to that decoder, with
alpha as ``lm_weight`` and beta as ``word_score``. The decoder runs without a
lexicon, so the KenLM binary must be trained over the model's CTC tokens
(characters, with the word delimiter as the word boundary), not over words.

This module imports torch at load time and should only be used where the
``engine`` extra is installed.
"""

import logging
import threading
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import numpy as np
import torch

from speechstream import __version__
from speechstream.audio import pcm16_to_float32
from speechstream.constants import DEFAULT_BEAM_WIDTH
from speechstream.errors import DecodeError, ModelLoadError, ScorerLoadError
from speechstream.metadata import CandidateTranscript, TokenMetadata

logger = logging.getLogger(__name__)

# Shortest input the wav2vec2 feature encoder accepts (its receptive field).
MIN_INPUT_SAMPLES = 400


class Wav2Vec2Engine:
    """CTC speech recognition engine on torch.

    Loads a local transformers checkpoint (processor + CTC head) once and
    reuses it for every decode. Decoding state is rebuilt whenever the beam
    width or scorer settings change.
    """

    def __init__(self, device: str = "cpu", dtype: torch.dtype = torch.float32):
        """Initialize the engine.

        Args:
            device: Device to run inference on ("cuda" or "cpu").
            dtype: Model dtype.
        """
        self._device = device
        self._dtype = dtype

        self._processor = None
        self._model = None
        self._tokens: list[str] = []
        self._blank_token = "<pad>"
        self._sil_token = "|"
        self._unk_word = "<unk>"
        self._sample_rate = 0
        self._frame_seconds = 0.0

        self._beam_width = DEFAULT_BEAM_WIDTH
        self._scorer_path: str | None = None
        self._alpha = 0.0
        self._beta = 0.0
        self._decoder = None
        self._decoder_nbest = 0
        # flashlight decoders keep beam state on the object
        self._decoder_lock = threading.Lock()

    def load(self, model_path: str) -> None:
        """Load processor and CTC model from a local checkpoint directory."""
        path = Path(model_path)
        if not path.exists():
            raise ModelLoadError(f"Model not found at {path}")

        from transformers import AutoModelForCTC, AutoProcessor

        try:
            processor = AutoProcessor.from_pretrained(str(path))
            model = AutoModelForCTC.from_pretrained(str(path), torch_dtype=self._dtype)
        except (OSError, ValueError, KeyError) as e:
            raise ModelLoadError(f"Cannot load CTC model from {path}: {e}") from e

        tokenizer = getattr(processor, "tokenizer", None)
        feature_extractor = getattr(processor, "feature_extractor", None)
        if tokenizer is None or feature_extractor is None:
            raise ModelLoadError(
                f"Model at {path} has no CTC tokenizer and feature extractor"
            )

        vocab = tokenizer.get_vocab()
        self._tokens = [token for token, _ in sorted(vocab.items(), key=lambda item: item[1])]
        self._blank_token = tokenizer.pad_token or self._blank_token
        self._sil_token = getattr(tokenizer, "word_delimiter_token", None) or self._sil_token
        self._unk_word = tokenizer.unk_token or self._unk_word
        if self._blank_token not in vocab or self._sil_token not in vocab:
            raise ModelLoadError(
                f"Model at {path} vocabulary lacks blank {self._blank_token!r} "
                f"or word delimiter {self._sil_token!r}"
            )

        self._sample_rate = int(feature_extractor.sampling_rate)
        ratio = getattr(model.config, "inputs_to_logits_ratio", None)
        if not ratio:
            raise ModelLoadError(f"Model at {path} does not report its frame stride")
        self._frame_seconds = ratio / self._sample_rate

        self._processor = processor
        self._model = model.to(self._device)
        self._model.eval()
        self._decoder = None
        logger.info(
            f"CTC model loaded from {path} on {self._device} "
            f"({self._sample_rate} Hz, {len(self._tokens)} tokens)"
        )

    @property
    def sample_rate(self) -> int:
        self._require_loaded()
        return self._sample_rate

    @property
    def beam_width(self) -> int:
        return self._beam_width

    def set_beam_width(self, beam_width: int) -> None:
        with self._decoder_lock:
            self._beam_width = beam_width
            self._decoder = None

    def enable_scorer(self, scorer_path: str, alpha: float, beta: float) -> None:
        self._require_loaded()
        if not Path(scorer_path).is_file():
            raise ScorerLoadError(f"Scorer not found at {scorer_path}")

        with self._decoder_lock:
            previous = (self._scorer_path, self._alpha, self._beta)
            self._scorer_path, self._alpha, self._beta = scorer_path, alpha, beta
            try:
                self._build_decoder(nbest=1)
            except (RuntimeError, ValueError, OSError) as e:
                self._scorer_path, self._alpha, self._beta = previous
                self._decoder = None
                raise ScorerLoadError(f"Cannot load scorer {scorer_path}: {e}") from e

    def disable_scorer(self) -> None:
        with self._decoder_lock:
            self._scorer_path = None
            self._decoder = None

    def set_scorer_alpha_beta(self, alpha: float, beta: float) -> None:
        with self._decoder_lock:
            self._alpha = alpha
            self._beta = beta
            self._decoder = None

    def decode(self, samples: np.ndarray, num_results: int) -> list[CandidateTranscript]:
        """Run the acoustic model and beam search over a full buffer."""
        self._require_loaded()

        if len(samples) < MIN_INPUT_SAMPLES:
            return [CandidateTranscript(tokens=(), confidence=0.0)]

        try:
            with torch.no_grad():
                inputs = self._processor(
                    audio=pcm16_to_float32(samples),
                    sampling_rate=self._sample_rate,
                    return_tensors="pt",
                )
                input_values = inputs.input_values.to(self._model.device, dtype=self._dtype)
                logits = self._model(input_values).logits
                emissions = torch.log_softmax(logits.float(), dim=-1).cpu()

            with self._decoder_lock:
                decoder = self._decoder_for(num_results)
                hypotheses = decoder(emissions)[0]
                candidates = [self._candidate(decoder, hyp) for hyp in hypotheses[:num_results]]
        except RuntimeError as e:
            raise DecodeError(str(e)) from e

        return candidates or [CandidateTranscript(tokens=(), confidence=0.0)]

    def versions(self) -> dict[str, str]:
        result = {
            "speechstream": __version__,
            "engine": "wav2vec2-ctc",
            "torch": torch.__version__,
        }
        for package in ("transformers", "torchaudio", "flashlight-text"):
            try:
                result[package] = version(package)
            except PackageNotFoundError:
                result[package] = "not installed"
        return result

    def unload(self) -> None:
        with self._decoder_lock:
            self._decoder = None
        self._processor = None
        self._model = None
        self._scorer_path = None
        if self._device.startswith("cuda") and torch.cuda.is_available():
            torch.cuda.empty_cache()

    @property
    def device(self) -> str:
        """Return the device the model is running on."""
        return self._device

    @property
    def is_loaded(self) -> bool:
        """Check if the model is loaded."""
        return self._model is not None

    def _require_loaded(self) -> None:
        if self._model is None:
            raise RuntimeError("Model not loaded. Call load() first.")

    def _decoder_for(self, num_results: int):
        if self._decoder is None or self._decoder_nbest < num_results:
            self._build_decoder(nbest=num_results)
        return self._decoder

    def _build_decoder(self, nbest: int) -> None:
        from torchaudio.models.decoder import ctc_decoder

        kwargs = {}
        if self._scorer_path is not None:
            kwargs.update(lm=self._scorer_path, lm_weight=self._alpha, word_score=self._beta)

        self._decoder = ctc_decoder(
            lexicon=None,
            tokens=self._tokens,
            nbest=max(1, nbest),
            beam_size=self._beam_width,
            blank_token=self._blank_token,
            sil_token=self._sil_token,
            unk_word=self._unk_word,
            **kwargs,
        )
        self._decoder_nbest = max(1, nbest)

    def _candidate(self, decoder, hypothesis) -> CandidateTranscript:
        """Convert a flashlight hypothesis into character tokens with timing."""
        texts = decoder.idxs_to_tokens(hypothesis.tokens)
        steps = [int(t) for t in hypothesis.timesteps]

        placed: list[tuple[str, int]] = []
        for text, step in zip(texts, steps):
            if text == self._blank_token:
                continue
            char = " " if text == self._sil_token else text
            if char == " " and (not placed or placed[-1][0] == " "):
                continue
            placed.append((char, step))
        while placed and placed[-1][0] == " ":
            placed.pop()

        tokens = []
        for i, (text, step) in enumerate(placed):
            next_step = placed[i + 1][1] if i + 1 < len(placed) else step + 1
            tokens.append(
                TokenMetadata(
                    text=text,
                    timestep=step,
                    start_time=step * self._frame_seconds,
                    duration=max(0, next_step - step) * self._frame_seconds,
                )
            )
        return CandidateTranscript(tokens=tuple(tokens), confidence=float(hypothesis.score))
