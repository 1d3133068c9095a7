"""End-to-end tests for the HTTP surface."""

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from starlette.requests import ClientDisconnect, Request

from mediastream.core.config import Settings
from mediastream.main import create_application
from mediastream.models.session import UploadSession


def _upload(client, file_id, data):
    return client.post("/api/upload", params={"id": file_id}, content=data)


class TestHealth:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestLifespan:

    def test_storage_created_on_startup_only(self, tmp_path, clock):
        storage = tmp_path / "lazy" / "videos"
        app = create_application(Settings(storage_path=storage), clock=clock)

        assert not storage.exists()

        with TestClient(app):
            assert storage.is_dir()
            assert app.state.services.reclamation.running

        assert not app.state.services.reclamation.running


class TestUploadEndpoint:

    def test_upload_then_watch(self, client, media_bytes, storage_path):
        response = _upload(client, "clip", media_bytes)

        assert response.status_code == 200
        body = response.json()
        assert body["completed"] is True
        assert body["written_size"] == 1000
        assert body["declared_size"] == 1000
        assert (storage_path / "clip.mp4").read_bytes() == media_bytes

        watched = client.get("/api/watch", params={"id": "clip"})
        assert watched.status_code == 200
        assert watched.content == media_bytes

    def test_missing_identifier(self, client):
        response = client.post("/api/upload", content=b"data")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert error["message"] == "fileid is missing"

    def test_unsafe_identifier(self, client, storage_path):
        response = _upload(client, "../../etc/passwd", b"data")

        assert response.status_code == 400
        assert list(storage_path.iterdir()) == []

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_other_methods_rejected(self, client, method):
        response = client.request(method, "/api/upload", params={"id": "clip"})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Method not allowed"

    def test_body_without_length_rejected(self, client, storage_path):
        def chunked():
            yield b"abc"
            yield b"def"

        response = client.post("/api/upload", params={"id": "clip"}, content=chunked())

        assert response.status_code == 400
        assert not (storage_path / "clip.mp4").exists()

    def test_storage_failure(self, client, storage_path):
        (storage_path / "clip.mp4").mkdir()

        response = _upload(client, "clip", b"data")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "STORAGE_FAILURE"
        assert error["message"] == "failed to save video file"

    def test_stalled_body_times_out(self, app, client, storage_path, monkeypatch):
        async def stalled_stream(self):
            yield b"ab"
            await asyncio.sleep(10)
            yield b"cd"

        monkeypatch.setattr(Request, "stream", stalled_stream)
        app.state.services.uploads.read_timeout = 0.05

        response = _upload(client, "clip", b"abcd")

        assert response.status_code == 408
        error = response.json()["error"]
        assert error["code"] == "UPLOAD_TIMEOUT"
        assert error["details"]["written_size"] == 2
        assert app.state.services.registry.uploads.get("clip").written_size == 2
        assert (storage_path / "clip.mp4").read_bytes() == b"ab"

    def test_client_disconnect_mid_body(self, app, client, monkeypatch):
        async def disconnecting_stream(self):
            yield b"ab"
            raise ClientDisconnect()

        monkeypatch.setattr(Request, "stream", disconnecting_stream)

        response = _upload(client, "clip", b"abcd")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert error["message"] == "failed to read video file"
        assert app.state.services.registry.uploads.get("clip").written_size == 2

    def test_status_of_inflight_upload(self, app, client, storage_path):
        app.state.services.registry.uploads.get_or_create(
            "clip",
            lambda: UploadSession(
                file_id="clip",
                destination_path=Path(storage_path / "clip.mp4"),
                declared_size=400,
                created_at=1000.0,
                last_activity=1000.0,
                written_size=100,
            )
        )

        response = client.get("/api/upload/status", params={"id": "clip"})

        assert response.status_code == 200
        body = response.json()
        assert body["completion_percentage"] == 25.0
        assert body["written_size"] == 100
        assert body["handle_open"] is False

    def test_status_of_unknown_upload(self, client):
        response = client.get("/api/upload/status", params={"id": "nothing"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_404"


class TestWatchEndpoint:

    def test_partial_content(self, client, write_media, media_bytes):
        write_media("clip", media_bytes)

        response = client.get("/api/watch", params={"id": "clip"}, headers={"Range": "bytes=200-499"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 200-499/1000"
        assert response.headers["content-length"] == "300"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == media_bytes[200:500]

    def test_open_ended_range(self, client, write_media, media_bytes):
        write_media("clip", media_bytes)

        response = client.get("/api/watch", params={"id": "clip"}, headers={"Range": "bytes=900-"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 900-999/1000"
        assert response.content == media_bytes[900:]

    def test_unsatisfiable_range(self, client, write_media, media_bytes):
        write_media("clip", media_bytes)

        response = client.get("/api/watch", params={"id": "clip"}, headers={"Range": "bytes=5000-"})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */1000"
        assert response.json()["error"]["code"] == "INVALID_RANGE"

    def test_unparsable_range_serves_full_file(self, client, write_media, media_bytes):
        write_media("clip", media_bytes)

        response = client.get("/api/watch", params={"id": "clip"}, headers={"Range": "bytes=abc-def"})

        assert response.status_code == 200
        assert response.content == media_bytes

    def test_missing_media(self, app, client):
        response = client.get("/api/watch", params={"id": "nothing"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "MEDIA_NOT_FOUND"
        assert "nothing" not in app.state.services.registry.streams

    def test_missing_identifier(self, client):
        response = client.get("/api/watch")

        assert response.status_code == 400

    def test_viewer_released_after_response(self, app, client, write_media, media_bytes):
        write_media("clip", media_bytes)

        client.get("/api/watch", params={"id": "clip"})
        client.get("/api/watch", params={"id": "clip"}, headers={"Range": "bytes=0-9"})

        session = app.state.services.registry.streams.get("clip")
        assert session is not None
        assert session.viewer_count == 0


class TestSessionEndpoints:

    def test_stats(self, client, write_media, media_bytes):
        write_media("clip", media_bytes)
        client.get("/api/watch", params={"id": "clip"})

        response = client.get("/api/sessions/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["upload_sessions"] == 0
        assert body["stream_sessions"] == 1
        assert body["active_viewers"] == 0
        assert body["reclamation_running"] is True
        assert body["last_sweep"] is None

    def test_manual_sweep(self, client, clock, write_media, media_bytes):
        write_media("clip", media_bytes)
        client.get("/api/watch", params={"id": "clip"})
        clock.advance(3601)

        response = client.post("/api/sessions/sweep")

        assert response.status_code == 200
        assert response.json()["streams_evicted"] == 1

        stats = client.get("/api/sessions/stats").json()
        assert stats["stream_sessions"] == 0
        assert stats["sweeps"] == 1
        assert stats["last_sweep"]["streams_evicted"] == 1
