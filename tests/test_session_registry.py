"""Tests for the concurrent session registry."""

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from mediastream.models.session import SessionNamespace, StreamSession, UploadSession
from mediastream.services.session_registry import SessionRegistry, SessionStore


def _upload(file_id: str) -> UploadSession:
    return UploadSession(
        file_id=file_id,
        destination_path=Path(f"/tmp/{file_id}.mp4"),
        declared_size=10,
        created_at=0.0,
        last_activity=0.0,
    )


class TestSessionStore:

    def test_get_or_create_installs_once(self):
        store = SessionStore(SessionNamespace.UPLOAD)
        calls = []

        def factory():
            calls.append(1)
            return _upload("a")

        first = store.get_or_create("a", factory)
        second = store.get_or_create("a", factory)

        assert first is second
        assert len(calls) == 1
        assert "a" in store
        assert len(store) == 1

    def test_concurrent_first_access_converges(self):
        store = SessionStore(SessionNamespace.UPLOAD)
        barrier = threading.Barrier(16)
        created = []

        def factory():
            session = _upload("shared")
            created.append(session)
            return session

        def worker(_):
            barrier.wait()
            return store.get_or_create("shared", factory)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(worker, range(16)))

        assert len(created) == 1
        assert all(result is created[0] for result in results)

    def test_remove_only_expected_instance(self):
        store = SessionStore(SessionNamespace.UPLOAD)
        stale = _upload("a")
        store.get_or_create("a", lambda: stale)
        assert store.remove("a", expected=stale)

        fresh = store.get_or_create("a", lambda: _upload("a"))
        assert not store.remove("a", expected=stale)
        assert store.get("a") is fresh
        assert store.remove("a")
        assert not store.remove("a")
        assert store.get("a") is None

    def test_for_each_tolerates_mutation(self):
        store = SessionStore(SessionNamespace.UPLOAD)
        for name in ("a", "b", "c"):
            store.get_or_create(name, lambda name=name: _upload(name))

        visited = []

        def visitor(file_id, session):
            visited.append(file_id)
            store.remove(file_id)
            store.get_or_create("late", lambda: _upload("late"))

        store.for_each(visitor)

        assert sorted(visited) == ["a", "b", "c"]
        assert store.get("late") is not None
        assert len(store) == 1

    def test_for_each_stops_when_visitor_returns_false(self):
        store = SessionStore(SessionNamespace.UPLOAD)
        for name in ("a", "b", "c"):
            store.get_or_create(name, lambda name=name: _upload(name))

        visited = []
        store.for_each(lambda file_id, session: visited.append(file_id) or False)

        assert len(visited) == 1


class TestSessionRegistry:

    def test_namespaces_are_independent(self):
        registry = SessionRegistry()
        upload = registry.get_or_create(SessionNamespace.UPLOAD, "clip", lambda: _upload("clip"))
        stream = registry.get_or_create(
            SessionNamespace.STREAM, "clip", lambda: StreamSession(file_id="clip", last_accessed=0.0)
        )

        assert registry.uploads.get("clip") is upload
        assert registry.streams.get("clip") is stream

        assert registry.remove(SessionNamespace.STREAM, "clip")
        assert registry.uploads.get("clip") is upload

    def test_independent_instances(self):
        first, second = SessionRegistry(), SessionRegistry()
        first.uploads.get_or_create("clip", lambda: _upload("clip"))

        assert "clip" in first.uploads
        assert "clip" not in second.uploads

    def test_stats(self):
        registry = SessionRegistry()
        registry.uploads.get_or_create("a", lambda: _upload("a"))
        registry.streams.get_or_create("a", lambda: StreamSession(file_id="a", last_accessed=0.0, viewer_count=2))
        registry.streams.get_or_create("b", lambda: StreamSession(file_id="b", last_accessed=0.0, viewer_count=1))

        assert registry.stats() == {"upload_sessions": 1, "stream_sessions": 2, "active_viewers": 3}
