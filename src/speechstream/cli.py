"""Command line transcription of raw PCM16 audio.

Usage:
    speechstream --model models/wav2vec2 --audio speech.raw [--scorer lm.binary]
    cat speech.raw | speechstream --model models/wav2vec2 --audio - --stream

Audio must be headerless 16-bit little-endian mono PCM at the model's sample
rate (use e.g. ``sox in.wav -t raw -r 16000 -b 16 -c 1 -e signed out.raw``).
"""

import argparse
import dataclasses
import json
import logging
import sys
import time
from pathlib import Path

from rich.console import Console
from rich.table import Table

from speechstream.audio import chunk_audio, duration_bytes, to_samples
from speechstream.config import ModelConfig
from speechstream.constants import CHUNK_MS
from speechstream.errors import SpeechStreamError
from speechstream.logging_setup import setup_logging
from speechstream.metadata import Metadata
from speechstream.model import Model

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DECODE_FAILED = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="speechstream", description="Speech-to-text on raw PCM16 audio")
    ap.add_argument("--model", required=True, help="Path to the model")
    ap.add_argument(
        "--scorer",
        help="Path to the external scorer, a KenLM binary over the model's CTC tokens (characters)",
    )
    ap.add_argument("--audio", help="Raw PCM16 mono audio file, or - for stdin")
    ap.add_argument(
        "--engine",
        choices=("wav2vec2", "fake"),
        default="wav2vec2",
        help="Inference backend",
    )
    ap.add_argument("--beam-width", type=int, help="Beam width for the CTC decoder")
    ap.add_argument("--lm-alpha", type=float, help="Language model weight (requires --scorer)")
    ap.add_argument("--lm-beta", type=float, help="Word insertion weight (requires --scorer)")
    ap.add_argument("--extended", action="store_true", help="Print token timing table")
    ap.add_argument("--json", action="store_true", help="Print metadata as JSON")
    ap.add_argument(
        "--candidate-transcripts",
        type=int,
        default=3,
        help="Number of candidates to print with --json",
    )
    ap.add_argument("--stream", action="store_true", help="Feed audio in chunks and print partials")
    ap.add_argument("--chunk-ms", type=int, default=CHUNK_MS, help="Chunk size for --stream")
    ap.add_argument("--version", action="store_true", help="Print engine versions and exit")
    ap.add_argument("--log-level", default="WARNING", help="Logging level")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    console = Console()
    err_console = Console(stderr=True)

    if not args.version and not args.audio:
        err_console.print("[red]Error:[/red] --audio is required")
        return EXIT_ERROR
    if (args.lm_alpha is None) != (args.lm_beta is None):
        err_console.print("[red]Error:[/red] --lm-alpha and --lm-beta must be given together")
        return EXIT_ERROR
    if args.lm_alpha is not None and not args.scorer:
        err_console.print("[red]Error:[/red] --lm-alpha and --lm-beta require --scorer")
        return EXIT_ERROR

    try:
        config = ModelConfig.from_env()
        if args.beam_width is not None:
            config = dataclasses.replace(config, beam_width=args.beam_width)

        load_start = time.perf_counter()
        with Model(args.model, engine=_make_engine(args.engine, config), config=config) as model:
            logger.info(f"Loaded model in {time.perf_counter() - load_start:.3f}s")

            if args.version:
                for name, ver in model.versions().items():
                    console.print(f"{name}: {ver}")
                return EXIT_OK

            if args.scorer:
                model.enable_external_scorer(args.scorer)
                if args.lm_alpha is not None:
                    model.set_scorer_alpha_beta(args.lm_alpha, args.lm_beta)

            data = _read_audio(args.audio)
            audio_seconds = len(to_samples(data)) / model.sample_rate
            num_results = args.candidate_transcripts if args.json else 1

            inference_start = time.perf_counter()
            if args.stream:
                metadata = _stream(model, data, args.chunk_ms, num_results, console)
            else:
                metadata = model.stt_with_metadata(data, num_results)
            logger.info(
                f"Inference took {time.perf_counter() - inference_start:.3f}s "
                f"for {audio_seconds:.3f}s audio"
            )
    except (SpeechStreamError, OSError, ValueError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return EXIT_ERROR

    if metadata is None:
        err_console.print("[red]Decoding failed[/red]")
        return EXIT_DECODE_FAILED

    if args.json:
        console.print_json(json.dumps(metadata.to_dict()))
    elif args.extended:
        console.print(_token_table(metadata))
    else:
        console.print(metadata.text, markup=False)
    return EXIT_OK


def _make_engine(name: str, config: ModelConfig):
    if name == "fake":
        from speechstream.engine.fake import FakeEngine

        return FakeEngine()

    from speechstream.engine.wav2vec2 import Wav2Vec2Engine

    return Wav2Vec2Engine(device=config.device)


def _read_audio(source: str) -> bytes:
    if source == "-":
        return sys.stdin.buffer.read()
    return Path(source).read_bytes()


def _stream(
    model: Model,
    data: bytes,
    chunk_ms: int,
    num_results: int,
    console: Console,
) -> Metadata | None:
    """Feed audio chunk by chunk, printing the partial transcript as it changes."""
    chunk_size = max(2, duration_bytes(chunk_ms, model.sample_rate))
    last = ""
    with model.create_stream() as stream:
        for chunk in chunk_audio(data, chunk_size):
            stream.feed_audio_content(chunk)
            partial = stream.intermediate_decode()
            if partial and partial != last:
                console.print(f"[dim]{partial}[/dim]")
                last = partial
        return stream.finish_stream_with_metadata(num_results)


def _token_table(metadata: Metadata) -> Table:
    table = Table(title=metadata.text or "(empty transcript)")
    table.add_column("token")
    table.add_column("timestep", justify="right")
    table.add_column("start (s)", justify="right")
    table.add_column("duration (s)", justify="right")
    best = metadata.best
    for token in best.tokens if best else ():
        table.add_row(repr(token.text), str(token.timestep), f"{token.start_time:.2f}", f"{token.duration:.2f}")
    return table


if __name__ == "__main__":
    sys.exit(main())
