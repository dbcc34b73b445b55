"""
Playback and Background Worker Tests

Play counting, transition recording, and the post-commit worker: archival once a
track crosses the play threshold, purge handling, and failure isolation.

Run:
----
    pytest tests/test_playback.py -v
"""

import asyncio
import logging

import pytest
from conftest import make_track, tid

from vibe_server.models.resolution import ResolutionTier
from vibe_server.services.background_worker import BackgroundWorker
from vibe_server.services.events import CachePurge, PlayRecorded
from vibe_server.services.playback import PlaybackService
from vibe_server.services.resolution_cache import ResolutionCache
from vibe_server.services.track_store import InMemoryTrackStore


@pytest.fixture
def store():
    return InMemoryTrackStore([make_track("A"), make_track("B")])


@pytest.fixture
def playback(store, graph, events, library):
    return PlaybackService(store, graph, events, library=library)


@pytest.fixture
def worker(events, store, object_store, upstream, clock):
    return BackgroundWorker(events, store, object_store=object_store, upstream=upstream,
                            archive_threshold=3, clock=clock)


class TestRecordPlay:
    async def test_increments_and_emits(self, playback, events, library):
        assert await playback.record_play(tid("A"), user_id="u1") == 1
        assert await playback.record_play(tid("A")) == 2

        first = events.get_nowait()
        assert isinstance(first, PlayRecorded)
        assert (first.track_id, first.play_count, first.user_id) == (tid("A"), 1, "u1")
        profile = await library.get_profile("u1")
        assert profile.listen_counts == {tid("A"): 1}
        assert profile.recently_played_ids == [tid("A")]

    async def test_unknown_track(self, playback, events):
        assert await playback.record_play(tid("NOPE")) is None
        assert events.pending() == 0

    async def test_library_failure_keeps_play(self, store, graph, events):
        class Broken:
            async def record_listen(self, user_id, track_id):
                raise RuntimeError("library down")

        service = PlaybackService(store, graph, events, library=Broken())
        assert await service.record_play(tid("A"), user_id="u1") == 1
        assert events.pending() == 1


class TestRecordTransition:
    async def test_recorded_in_graph(self, playback, graph):
        record = await playback.record_transition(tid("A"), tid("B"), "session-1", user_id="u1")
        assert record.from_track_id == tid("A")
        assert [p.to_track_id for p in await graph.probabilities(tid("A"))] == [tid("B")]

    async def test_malformed_id_rejected(self, playback, graph):
        assert await playback.record_transition("bad", tid("B"), "session-1") is None
        assert await graph.probabilities("bad") == []


class TestArchival:
    async def test_archives_at_threshold(self, playback, worker, store, object_store, upstream):
        for _ in range(2):
            await playback.record_play(tid("A"))
        await worker.drain()
        assert upstream.download_calls == 0

        await playback.record_play(tid("A"))
        await worker.drain()

        assert upstream.download_calls == 1
        assert object_store.objects == {"audio/A__________.m4a": b"audio-bytes"}
        assert (await store.find_by_external_id(tid("A"))).archived_format == "m4a"

    async def test_archived_track_resolves_from_object_store(
        self, playback, worker, store, events, quota, object_store, upstream, clock
    ):
        for _ in range(3):
            await playback.record_play(tid("A"))
        await worker.drain()

        resolver = ResolutionCache(store, quota, events, object_store=object_store,
                                   upstream=upstream, clock=clock)
        result = await resolver.resolve_audio(tid("A"))

        assert result.tier == ResolutionTier.OBJECT_STORE
        assert result.format == "m4a"
        assert upstream.audio_calls == 0

    async def test_already_archived_is_skipped(self, worker, events, store, upstream):
        await store.mark_archived(tid("A"), "m4a")
        events.emit(PlayRecorded(track_id=tid("A"), play_count=50))
        await worker.drain()
        assert upstream.download_calls == 0

    async def test_no_object_store_no_archival(self, events, store, upstream):
        worker = BackgroundWorker(events, store, upstream=upstream, archive_threshold=1)
        events.emit(PlayRecorded(track_id=tid("A"), play_count=5))
        await worker.drain()
        assert upstream.download_calls == 0

    async def test_handler_failure_is_logged(self, worker, events, upstream, caplog):
        async def broken(track_id):
            raise RuntimeError("disk full")

        upstream.download_audio = broken
        events.emit(PlayRecorded(track_id=tid("A"), play_count=10))
        events.emit(CachePurge(track_id=tid("B")))

        with caplog.at_level(logging.ERROR):
            assert await worker.drain() == 2

        assert worker.processed == 2
        assert "PlayRecorded handler failed" in caplog.text


class TestWorkerLoop:
    async def test_start_and_stop(self, worker, events):
        worker.start()
        assert worker.running
        events.emit(CachePurge(track_id=tid("A")))
        await worker.stop()
        assert not worker.running
        assert worker.processed == 1
        assert events.pending() == 0

    async def test_stop_finishes_inflight_archival(self, worker, events, upstream, object_store, store, caplog):
        caplog.set_level(logging.INFO)
        started, release = asyncio.Event(), asyncio.Event()

        async def slow_download(track_id):
            started.set()
            await release.wait()
            return b"late-bytes", "m4a"

        upstream.download_audio = slow_download
        worker.start()
        events.emit(PlayRecorded(track_id=tid("A"), play_count=10))
        await started.wait()

        stopping = asyncio.create_task(worker.stop())
        for _ in range(5):
            await asyncio.sleep(0)
        release.set()
        await stopping

        assert object_store.objects == {"audio/A__________.m4a": b"late-bytes"}
        assert (await store.find_by_external_id(tid("A"))).archived_format == "m4a"
        assert "finishing in-flight PlayRecorded" in caplog.text
        assert worker.processed == 1
