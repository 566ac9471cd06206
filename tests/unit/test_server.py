"""Unit tests for the FastAPI server with FakeEngine."""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from conftest import silence, tone, utterance
from speechstream.engine.fake import FakeEngine
from speechstream.model import Model
from speechstream.server import PartialTracker, create_app


def _collect(ws) -> list[dict]:
    messages = []
    while True:
        msg = ws.receive_json()
        messages.append(msg)
        if msg.get("status") == "complete":
            return messages


class TestPartialTracker:
    """Tests for partial transcript pacing."""

    def test_initial_state(self):
        tracker = PartialTracker(chunk_threshold=100)
        assert tracker.pending_bytes == 0
        assert not tracker.has_enough_data()

    def test_has_enough_data(self):
        """has_enough_data should respect threshold."""
        tracker = PartialTracker(chunk_threshold=100)
        tracker.add(50)
        assert not tracker.has_enough_data()
        tracker.add(50)
        assert tracker.has_enough_data()
        tracker.reset()
        assert tracker.pending_bytes == 0


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_returns_ok(self, model):
        """Health endpoint should return status ok."""
        client = TestClient(create_app(model))

        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["sample_rate"] == 16000
        assert data["scorer_enabled"] is False
        assert data["open_streams"] == 0

    @pytest.mark.asyncio
    async def test_health_async(self, model, scorer_path):
        model.enable_external_scorer(scorer_path)
        async with AsyncClient(
            transport=ASGITransport(app=create_app(model)), base_url="http://test"
        ) as client:
            response = await client.get("/health")
        assert response.json()["scorer_enabled"] is True


class TestWebSocketEndpoint:
    """Tests for the WebSocket /v1/stream endpoint."""

    @pytest.fixture
    def app(self, model):
        return create_app(model)

    def test_eos_only(self, app, model):
        """Empty stream should finish with an empty final transcript."""
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(b"EOS")
                messages = _collect(ws)

        assert messages[0] == {"text": "", "final": True}
        assert model.open_streams == 0

    def test_final_matches_one_shot(self, app, model):
        audio = utterance()
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(audio.tobytes())
                ws.send_bytes(b"EOS")
                messages = _collect(ws)

        finals = [m for m in messages if m.get("final") is True]
        assert finals == [{"text": model.stt(audio), "final": True}]

    def test_partials_sent(self, app):
        """Partials are sent once enough new audio has arrived."""
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(tone(0.5).tobytes())
                partial = ws.receive_json()
                ws.send_bytes(b"EOS")
                messages = _collect(ws)

        assert partial["final"] is False
        assert partial["text"]
        assert messages[0]["text"] == partial["text"]

    def test_silence_sends_no_partials(self, app):
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                for _ in range(4):
                    ws.send_bytes(silence(0.25).tobytes())
                ws.send_bytes(b"EOS")
                messages = _collect(ws)

        assert [m for m in messages if m.get("final") is False] == []

    def test_invalid_audio(self, app):
        """Odd byte count should return error."""
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(bytes(101))
                msg = ws.receive_json()
                assert "error" in msg

                # Still should be able to send EOS
                ws.send_bytes(b"EOS")
                messages = _collect(ws)
        assert messages[-1]["status"] == "complete"

    def test_metadata_requested(self, app):
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream?metadata=true") as ws:
                ws.send_bytes(utterance().tobytes())
                ws.send_bytes(b"EOS")
                messages = _collect(ws)

        final = next(m for m in messages if m.get("final") is True)
        assert final["metadata"]["transcripts"][0]["text"] == final["text"]

    def test_decode_failure(self, app, engine):
        engine.fail_decode = True
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(b"EOS")
                messages = _collect(ws)
        assert messages[0] == {"error": "Decode failed"}

    def test_disconnect_frees_stream(self, app, model):
        """A client leaving without EOS must not leak its stream."""
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                ws.send_bytes(silence(0.1).tobytes())
        assert model.open_streams == 0

    def test_stream_limit(self, limited_model):
        limited_model.create_stream()
        limited_model.create_stream()
        with TestClient(create_app(limited_model)) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                assert "Stream limit" in ws.receive_json()["error"]

    def test_closed_model(self, model_path):
        closed = Model(model_path, engine=FakeEngine())
        app = create_app(closed)
        closed.close()
        with TestClient(app) as tc:
            with tc.websocket_connect("/v1/stream") as ws:
                assert "closed" in ws.receive_json()["error"]
                with pytest.raises(WebSocketDisconnect) as excinfo:
                    ws.receive_json()
        assert excinfo.value.code == 1011
