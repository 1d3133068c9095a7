"""
Shared fixtures for the media streaming tests.

Every test gets its own storage directory, session registry and fake clock,
so tests never share session state.
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator, Callable

import pytest
from fastapi.testclient import TestClient

from mediastream.core.config import Settings
from mediastream.main import create_application
from mediastream.services import MediaServices, build_services


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Settings & services
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    storage = tmp_path / "videos"
    storage.mkdir()
    return Settings(
        storage_path=storage,
        upload_chunk_size=1024,
        stream_chunk_size=1024,
        upload_read_timeout=2.0,
        sweep_interval=900,
        session_idle_timeout=3600,
        sweep_lock_timeout=0.05,
    )


@pytest.fixture
def services(test_settings: Settings, clock: FakeClock) -> MediaServices:
    return build_services(test_settings, clock=clock)


@pytest.fixture
def storage_path(test_settings: Settings) -> Path:
    return test_settings.storage_path


# ============================================================================
# Media helpers
# ============================================================================

@pytest.fixture
def media_bytes() -> bytes:
    """1000 bytes with a non-repeating prefix pattern."""
    return bytes(i % 251 for i in range(1000))


@pytest.fixture
def write_media(storage_path: Path) -> Callable[[str, bytes], Path]:
    """Place a completed media file on storage."""
    def _write(file_id: str, data: bytes) -> Path:
        path = storage_path / f"{file_id}.mp4"
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def make_body() -> Callable[..., AsyncIterator[bytes]]:
    """Build an async request body from byte pieces."""
    def _make(*pieces: bytes, pause: float = 0.0) -> AsyncIterator[bytes]:
        async def _body():
            for piece in pieces:
                if pause:
                    await asyncio.sleep(pause)
                else:
                    await asyncio.sleep(0)
                yield piece
        return _body()
    return _make


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def app(test_settings: Settings, clock: FakeClock):
    return create_application(test_settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
