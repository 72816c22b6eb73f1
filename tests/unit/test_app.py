import base64
import dataclasses

import pytest
from fastapi.testclient import TestClient

from stt_gateway import app as app_module
from stt_gateway.asr.providers.mock import DEFAULT_PHRASES
from stt_gateway.settings import settings


@pytest.fixture
def client(monkeypatch, tmp_path):
    cfg = dataclasses.replace(
        settings,
        audio=dataclasses.replace(settings.audio, max_bytes=1024 * 1024, temp_dir=str(tmp_path)),
        asr=dataclasses.replace(settings.asr, api_key=None, mock_latency_seconds=0.0),
        session=dataclasses.replace(
            settings.session,
            min_interval_seconds=0.0,
            follow_up_delay_seconds=0.0,
            keepalive_interval_seconds=0.0,
        ),
    )
    monkeypatch.setattr(app_module, "runtime_settings", cfg)
    with TestClient(app_module.app) as test_client:
        yield test_client


def test_health_reports_mock_mode(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["mock_mode"] is True
    assert body["active_sessions"] == 0


def test_websocket_transcribes_binary_and_json_messages(client, make_wav):
    wav = make_wav()

    with client.websocket_connect(settings.server.ws_path) as websocket:
        websocket.send_bytes(wav)
        first = websocket.receive_json()
        websocket.send_json({"audio": base64.b64encode(wav).decode("ascii"), "mimeType": "audio/wav"})
        second = websocket.receive_json()

    assert first["transcript"] == DEFAULT_PHRASES[0]
    assert "processingTime" in first
    assert second["transcript"] == DEFAULT_PHRASES[1]


def test_websocket_rejects_oversized_message(client):
    with client.websocket_connect(settings.server.ws_path) as websocket:
        websocket.send_bytes(b"\xff" * (1024 * 1024 + 1))
        reply = websocket.receive_json()

    assert reply == {"error": "Audio file too large (max 1MB)"}


def test_each_connection_gets_its_own_phrase_cycle(client, make_wav):
    for _ in range(2):
        with client.websocket_connect(settings.server.ws_path) as websocket:
            websocket.send_bytes(make_wav())
            assert websocket.receive_json()["transcript"] == DEFAULT_PHRASES[0]
