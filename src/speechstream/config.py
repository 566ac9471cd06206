"""Decoder configuration with environment overrides."""

import math
import os
from dataclasses import dataclass

from speechstream.constants import DEFAULT_BEAM_WIDTH, DEFAULT_LM_ALPHA, DEFAULT_LM_BETA
from speechstream.errors import ConfigError

ENV_PREFIX = "SPEECHSTREAM_"


@dataclass
class ModelConfig:
    """Settings applied to a Model when it is loaded.

    Attributes:
        beam_width: Beam size used by the CTC decoder.
        max_streams: Maximum number of simultaneously open streams (0 = unlimited).
        default_alpha: Language model weight applied when a scorer is enabled.
        default_beta: Word insertion weight applied when a scorer is enabled.
        device: Torch device for engines that run on torch ("cpu", "cuda", ...).
    """

    beam_width: int = DEFAULT_BEAM_WIDTH
    max_streams: int = 0
    default_alpha: float = DEFAULT_LM_ALPHA
    default_beta: float = DEFAULT_LM_BETA
    device: str = "cpu"

    def __post_init__(self) -> None:
        if self.beam_width < 1:
            raise ConfigError(f"beam_width must be >= 1, got {self.beam_width}")
        if self.max_streams < 0:
            raise ConfigError(f"max_streams must be >= 0, got {self.max_streams}")
        for name in ("default_alpha", "default_beta"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigError(f"{name} must be a finite number")
        if not self.device:
            raise ConfigError("device must not be empty")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ModelConfig":
        """Build a config from SPEECHSTREAM_* environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        for key, attr, cast in (
            ("BEAM_WIDTH", "beam_width", int),
            ("MAX_STREAMS", "max_streams", int),
            ("LM_ALPHA", "default_alpha", float),
            ("LM_BETA", "default_beta", float),
            ("DEVICE", "device", str),
        ):
            raw = env.get(ENV_PREFIX + key)
            if raw is None or raw == "":
                continue
            try:
                kwargs[attr] = cast(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {ENV_PREFIX}{key}: {raw!r}") from e

        return cls(**kwargs)
