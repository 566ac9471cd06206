"""Unit tests for the command line client (fake engine)."""

import json
import logging

import pytest

from conftest import silence, utterance
from speechstream.cli import EXIT_DECODE_FAILED, EXIT_ERROR, EXIT_OK, main
from speechstream.engine.fake import FakeEngine
from speechstream.logging_setup import setup_logging
from speechstream.model import Model


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "speech.raw"
    path.write_bytes(utterance().tobytes())
    return path


def _expected_text(model_path) -> str:
    with Model(model_path, engine=FakeEngine()) as model:
        return model.stt(utterance())


def test_transcribe(model_path, audio_file, capsys):
    code = main(["--engine", "fake", "--model", str(model_path), "--audio", str(audio_file)])
    assert code == EXIT_OK
    assert capsys.readouterr().out.strip() == _expected_text(model_path)


def test_stream_mode_prints_partials(model_path, audio_file, capsys):
    code = main(
        ["--engine", "fake", "--model", str(model_path), "--audio", str(audio_file), "--stream"]
    )
    assert code == EXIT_OK
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[-1] == _expected_text(model_path)
    assert len(lines) >= 2


def test_json_output(model_path, audio_file, scorer_path, capsys):
    code = main(
        [
            "--engine", "fake",
            "--model", str(model_path),
            "--scorer", str(scorer_path),
            "--lm-alpha", "0.5",
            "--lm-beta", "1.5",
            "--audio", str(audio_file),
            "--json",
            "--candidate-transcripts", "2",
        ]
    )
    assert code == EXIT_OK
    data = json.loads(capsys.readouterr().out)
    assert len(data["transcripts"]) == 2
    assert data["transcripts"][0]["text"] == _expected_text(model_path)


def test_extended_output(model_path, audio_file, capsys):
    code = main(
        ["--engine", "fake", "--model", str(model_path), "--audio", str(audio_file), "--extended"]
    )
    assert code == EXIT_OK
    assert "timestep" in capsys.readouterr().out


def test_silence(model_path, tmp_path, capsys):
    path = tmp_path / "quiet.raw"
    path.write_bytes(silence(1.0).tobytes())
    assert main(["--engine", "fake", "--model", str(model_path), "--audio", str(path)]) == EXIT_OK
    assert capsys.readouterr().out.strip() == ""


def test_version(model_path, capsys):
    assert main(["--engine", "fake", "--model", str(model_path), "--version"]) == EXIT_OK
    assert "engine: fake" in capsys.readouterr().out


def test_missing_model(tmp_path, audio_file):
    code = main(["--engine", "fake", "--model", str(tmp_path / "nope.json"), "--audio", str(audio_file)])
    assert code == EXIT_ERROR


def test_missing_scorer(model_path, audio_file, tmp_path):
    code = main(
        [
            "--engine", "fake",
            "--model", str(model_path),
            "--scorer", str(tmp_path / "missing.scorer"),
            "--audio", str(audio_file),
        ]
    )
    assert code == EXIT_ERROR


def test_odd_length_audio(model_path, tmp_path):
    path = tmp_path / "odd.raw"
    path.write_bytes(bytes(3))
    assert main(["--engine", "fake", "--model", str(model_path), "--audio", str(path)]) == EXIT_ERROR


def test_alpha_without_beta(model_path, audio_file):
    code = main(
        ["--engine", "fake", "--model", str(model_path), "--audio", str(audio_file), "--lm-alpha", "1"]
    )
    assert code == EXIT_ERROR


def test_weights_without_scorer(model_path, audio_file, capsys):
    code = main(
        [
            "--engine", "fake", "--model", str(model_path), "--audio", str(audio_file),
            "--lm-alpha", "0.5", "--lm-beta", "1.0",
        ]
    )
    assert code == EXIT_ERROR
    assert "require --scorer" in capsys.readouterr().err


def test_audio_required(model_path):
    assert main(["--engine", "fake", "--model", str(model_path)]) == EXIT_ERROR


def test_decode_failure(model_path, audio_file, monkeypatch):
    monkeypatch.setattr(
        "speechstream.cli._make_engine", lambda name, config: FakeEngine(fail_decode=True)
    )
    code = main(["--model", str(model_path), "--audio", str(audio_file)])
    assert code == EXIT_DECODE_FAILED


def test_setup_logging_single_handler():
    setup_logging("DEBUG")
    logger = setup_logging("warning")
    assert logger.name == "speechstream"
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
