"""FastAPI WebSocket server for streaming STT.

This server accepts PCM16 audio over WebSocket and returns transcriptions.
Each connection owns one Stream of the shared Model; the stream is finished
on end-of-stream and freed if the client disconnects first.
"""

import asyncio
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from speechstream.audio import duration_bytes, validate_audio_format
from speechstream.constants import CHUNK_MS
from speechstream.errors import ResourceExhaustedError, SpeechStreamError
from speechstream.model import Model
from speechstream.stream import Stream

logger = logging.getLogger(__name__)

EOS = b"EOS"


class PartialTracker:
    """Decides when enough new audio arrived to send a partial transcript."""

    def __init__(self, chunk_threshold: int):
        """Initialize the tracker.

        Args:
            chunk_threshold: Bytes of new audio between partial transcripts.
        """
        self.chunk_threshold = chunk_threshold
        self._pending = 0

    @property
    def pending_bytes(self) -> int:
        return self._pending

    def add(self, num_bytes: int) -> None:
        self._pending += num_bytes

    def has_enough_data(self) -> bool:
        """Check if enough audio arrived since the last partial."""
        return self._pending >= self.chunk_threshold

    def reset(self) -> None:
        self._pending = 0


def create_app(model: Model, chunk_ms: int = CHUNK_MS) -> FastAPI:
    """Create a FastAPI application serving the given model.

    Args:
        model: Loaded model shared by all connections.
        chunk_ms: Milliseconds of new audio between partial transcripts.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title="speechstream STT Service")
    chunk_bytes = duration_bytes(chunk_ms, model.sample_rate)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "sample_rate": model.sample_rate,
            "beam_width": model.beam_width,
            "scorer_enabled": model.scorer_enabled,
            "open_streams": model.open_streams,
        }

    @app.websocket("/v1/stream")
    async def stream_transcribe(websocket: WebSocket):
        """WebSocket endpoint for streaming audio transcription.

        Protocol:
        - Client sends binary PCM16 audio chunks (mono, model sample rate)
        - Client sends b"EOS" to signal end of stream
        - Server responds with JSON: {"text": "...", "final": bool}
        - Server sends {"status": "complete"} when done
        - Connect with ?metadata=true to get candidates with the final text
        """
        await websocket.accept()
        want_metadata = websocket.query_params.get("metadata", "").lower() in ("1", "true")
        try:
            stream = model.create_stream()
        except ResourceExhaustedError as e:
            await websocket.send_json({"error": str(e)})
            await websocket.close(code=1013)  # try again later
            return
        except SpeechStreamError as e:
            await websocket.send_json({"error": str(e)})
            await websocket.close(code=1011)
            return
        tracker = PartialTracker(chunk_bytes)
        loop = asyncio.get_running_loop()

        try:
            while True:
                data = await websocket.receive_bytes()

                # Handle end-of-stream signal
                if data == EOS:
                    await _send_final(websocket, stream, want_metadata)
                    await websocket.send_json({"status": "complete"})
                    break

                if not validate_audio_format(data):
                    await websocket.send_json(
                        {"error": "Invalid audio format (must be PCM16)"}
                    )
                    continue

                stream.feed_audio_content(data)
                tracker.add(len(data))

                if tracker.has_enough_data():
                    tracker.reset()
                    text = await loop.run_in_executor(None, stream.intermediate_decode)
                    if text is None:
                        await websocket.send_json({"error": "Decode failed"})
                    elif text.strip():
                        await websocket.send_json({"text": text, "final": False})

        except WebSocketDisconnect:
            logger.debug(f"Client disconnected from stream {stream.stream_id}")
        finally:
            if stream.is_open:
                stream.free_stream()

    return app


async def _send_final(websocket: WebSocket, stream: Stream, want_metadata: bool) -> None:
    """Finish the stream and send the final transcript."""
    loop = asyncio.get_running_loop()
    metadata = await loop.run_in_executor(None, stream.finish_stream_with_metadata)

    if metadata is None:
        await websocket.send_json({"error": "Decode failed"})
        return

    message: dict = {"text": metadata.text, "final": True}
    if want_metadata:
        message["metadata"] = metadata.to_dict()
    await websocket.send_json(message)
