"""Shared fixtures: fake model artifacts and synthetic audio."""

import numpy as np
import pytest

from speechstream.config import ModelConfig
from speechstream.constants import SAMPLE_RATE
from speechstream.engine.fake import FakeEngine, write_fake_model
from speechstream.model import Model


def tone(seconds: float, sample_rate: int = SAMPLE_RATE, freq: float = 440.0, amplitude: int = 8000) -> np.ndarray:
    """Sine tone as int16 samples (loud enough to count as speech for FakeEngine)."""
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def silence(seconds: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    return np.zeros(int(seconds * sample_rate), dtype=np.int16)


def utterance() -> np.ndarray:
    """Two "words" separated by a pause."""
    return np.concatenate(
        [silence(0.1), tone(0.5), silence(0.2), tone(0.3, freq=660.0), silence(0.1)]
    )


@pytest.fixture
def model_path(tmp_path):
    return write_fake_model(tmp_path / "model.json")


@pytest.fixture
def scorer_path(tmp_path):
    path = tmp_path / "lm.scorer"
    path.write_bytes(b"fake kenlm scorer")
    return path


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def model(model_path, engine):
    m = Model(model_path, engine=engine)
    yield m
    if not m.closed:
        for stream_id in list(m._streams):
            m._streams[stream_id].free_stream()
        m.close()


@pytest.fixture
def limited_model(model_path):
    m = Model(model_path, engine=FakeEngine(), config=ModelConfig(max_streams=2))
    yield m
    for stream_id in list(m._streams):
        m._streams[stream_id].free_stream()
    m.close()
