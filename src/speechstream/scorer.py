"""External scorer binding.

Configuration object layered on a Model. It owns no resources of its own:
the language model lives inside the engine, and this class only tracks
whether one is attached and with which weights.
"""

import logging
import math
from pathlib import Path

from speechstream.engine.protocol import Engine
from speechstream.errors import InvalidStateError, ScorerLoadError

logger = logging.getLogger(__name__)


class ExternalScorer:
    """Tracks and mutates the external scorer attached to an engine."""

    def __init__(self, engine: Engine, default_alpha: float, default_beta: float):
        self._engine = engine
        self._default_alpha = default_alpha
        self._default_beta = default_beta
        self._path: Path | None = None
        self._alpha = default_alpha
        self._beta = default_beta

    @property
    def enabled(self) -> bool:
        return self._path is not None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def alpha(self) -> float:
        """Language model weight. Only meaningful while enabled."""
        return self._alpha

    @property
    def beta(self) -> float:
        """Word insertion weight. Only meaningful while enabled."""
        return self._beta

    def enable(self, scorer_path: str | Path) -> None:
        """Attach a scorer, replacing any scorer already attached.

        Weights are reset to the configured defaults.

        Raises:
            ScorerLoadError: If the file is missing or the engine rejects it.
        """
        path = Path(scorer_path)
        if not path.is_file():
            raise ScorerLoadError(f"Scorer not found at {path}")

        self._engine.enable_scorer(str(path), self._default_alpha, self._default_beta)
        self._path = path
        self._alpha = self._default_alpha
        self._beta = self._default_beta
        logger.info(f"External scorer enabled: {path}")

    def disable(self) -> None:
        """Detach the scorer.

        Raises:
            InvalidStateError: If no scorer is enabled.
        """
        self._require_enabled("disable")
        self._engine.disable_scorer()
        logger.info(f"External scorer disabled: {self._path}")
        self._path = None

    def set_alpha_beta(self, alpha: float, beta: float) -> None:
        """Set the scorer weights used from the next decode on.

        Raises:
            InvalidStateError: If no scorer is enabled.
            ValueError: If either weight is not a finite number.
        """
        self._require_enabled("set alpha/beta on")
        alpha = float(alpha)
        beta = float(beta)
        if not (math.isfinite(alpha) and math.isfinite(beta)):
            raise ValueError(f"alpha and beta must be finite, got {alpha}, {beta}")

        self._engine.set_scorer_alpha_beta(alpha, beta)
        self._alpha = alpha
        self._beta = beta
        logger.debug(f"Scorer weights set: alpha={alpha} beta={beta}")

    def _require_enabled(self, action: str) -> None:
        if not self.enabled:
            raise InvalidStateError(f"Cannot {action} the external scorer: none is enabled")
