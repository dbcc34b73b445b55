"""
Recommendation Pipeline Tests

End-to-end runs of recommend_next over in-memory stores: candidate generation
(four isolated sources), language lock, fallback ladder routing, and the service
wrapper that resolves the current track.

Scenario (language lock):
-------------------------
Current track is Haitian Creole kompa. The only related candidate is English pop,
so the vibe filter empties the pool and the fallback ladder answers.

Run:
----
    pytest tests/test_recommendation.py -v
"""

from datetime import timedelta

import pytest
from conftest import NOW, FixedRandom, make_track, tid

from recommender.errors import ExhaustionError
from recommender.models.scoring import CandidateSource, SelectionMethod
from recommender.models.session import SessionContext
from recommender.stages import orchestrator
from recommender.stages.candidate_pool import generate_candidates
from recommender.stages.orchestrator import recommend_next
from recommender.stages.selection import WeightedPicker
from vibe_server.services.recommendation_service import RecommendationService
from vibe_server.services.track_store import InMemoryTrackStore

RECENT = NOW - timedelta(days=1)


def _kompa_catalog():
    current = make_track("CUR", genres=["kompa"], language="ht", channel_id="c1")
    ht = make_track("HT1", genres=["kompa"], language="ht", channel_id="c1",
                    view_count=50_000, published_at=RECENT)
    en = make_track("EN1", genres=["pop"], language="en", channel_id="c1")
    return current, InMemoryTrackStore([current, ht, en])


class TestCandidateGeneration:
    async def test_all_sources_tagged(self, graph, library):
        current, store = _kompa_catalog()
        await graph.record(tid("CUR"), tid("HT1"), "s1")
        ctx = SessionContext(current_track=current)

        candidates = await generate_candidates(ctx, store, graph, now=NOW)

        by_source = {}
        for c in candidates:
            by_source.setdefault(c.source, []).append(c.track.track_id)
        assert by_source[CandidateSource.GRAPH] == [tid("HT1")]
        assert by_source[CandidateSource.TRENDING] == [tid("HT1")]
        assert sorted(by_source[CandidateSource.RELATED]) == [tid("EN1"), tid("HT1")]
        assert CandidateSource.USER_HISTORY not in by_source

    async def test_user_history_for_signed_in_listener(self, graph):
        current, store = _kompa_catalog()
        liked = make_track("LK", genres=["kompa"], language="ht")
        other = make_track("OT", genres=["rock"], language="fr")
        await store.upsert_discovered(liked)
        await store.upsert_discovered(other)
        ctx = SessionContext(
            current_track=current,
            user_id="u1",
            is_anonymous=False,
            affinity_track_ids=[tid("LK"), tid("OT")],
        )
        candidates = await generate_candidates(ctx, store, graph, now=NOW)
        history = [c.track.track_id for c in candidates if c.source == CandidateSource.USER_HISTORY]
        assert history == [tid("LK")]

    async def test_failing_source_is_isolated(self, graph):
        current, store = _kompa_catalog()

        async def broken(*args, **kwargs):
            raise RuntimeError("trending index offline")

        store.find_trending = broken
        candidates = await generate_candidates(SessionContext(current_track=current), store, graph, now=NOW)
        sources = {c.source for c in candidates}
        assert CandidateSource.TRENDING not in sources
        assert CandidateSource.RELATED in sources

    async def test_trending_respects_window(self, graph):
        current, store = _kompa_catalog()
        await store.upsert_discovered(
            make_track("OLD", genres=["kompa"], view_count=900_000, published_at=NOW - timedelta(days=45))
        )
        candidates = await generate_candidates(SessionContext(current_track=current), store, graph, now=NOW)
        trending = [c.track.track_id for c in candidates if c.source == CandidateSource.TRENDING]
        assert tid("OLD") not in trending


class TestRecommendNext:
    async def test_language_locked_pipeline(self, graph):
        current, store = _kompa_catalog()
        await graph.record(tid("CUR"), tid("HT1"), "s1")
        ctx = SessionContext(current_track=current)

        result = await recommend_next(ctx, store, graph, picker=WeightedPicker(FixedRandom(0.5, 0.5)), now=NOW)

        assert result.next_track.track_id == tid("HT1")
        assert result.method == SelectionMethod.DISCOVERY
        stats = result.debug.filter_stats
        assert (stats.initial, stats.after_vibe_filter, stats.after_dedup) == (4, 3, 1)
        assert not result.debug.used_fallback

    async def test_language_lock_empties_pool_then_fallback(self, graph, picker):
        current = make_track("CUR", genres=["kompa"], language="ht", channel_id="c1")
        en = make_track("EN1", genres=["pop"], language="en", channel_id="c1")
        store = InMemoryTrackStore([current, en])

        result = await recommend_next(SessionContext(current_track=current), store, graph, picker=picker, now=NOW)

        assert result.debug.used_fallback
        assert result.debug.filter_stats.after_vibe_filter == 0
        assert result.method == SelectionMethod.RANDOM
        assert result.next_track.track_id == tid("EN1")
        assert result.debug.fallback_rung == 2

    async def test_never_returns_current_or_history(self, graph):
        tracks = [make_track(f"T{i}", genres=["pop"], channel_id="c1") for i in range(8)]
        store = InMemoryTrackStore(tracks)
        history = [tid("T1"), tid("T2"), tid("T3")]
        ctx = SessionContext(current_track=tracks[0], recent_history=history)
        for seed in (0.0, 0.3, 0.6, 0.99):
            result = await recommend_next(ctx, store, graph, picker=WeightedPicker(FixedRandom(seed, seed)), now=NOW)
            assert result.next_track.track_id not in {tid("T0"), *history}
            assert len(result.alternatives) <= 5

    async def test_pipeline_error_routes_to_fallback(self, graph, monkeypatch):
        current, store = _kompa_catalog()

        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(orchestrator, "generate_candidates", explode)
        picker = WeightedPicker(FixedRandom(0.0))
        result = await recommend_next(SessionContext(current_track=current), store, graph, picker=picker, now=NOW)
        assert result.debug.used_fallback
        assert result.debug.fallback_rung == 1
        assert result.next_track.track_id == tid("HT1")

    async def test_unreachable_catalog_is_exhaustion(self, graph, picker, monkeypatch):
        current, store = _kompa_catalog()

        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        async def offline(*args, **kwargs):
            raise ConnectionError("datastore down")

        monkeypatch.setattr(orchestrator, "generate_candidates", explode)
        store.find_popular = offline
        with pytest.raises(ExhaustionError):
            await recommend_next(SessionContext(current_track=current), store, graph, picker=picker, now=NOW)

    async def test_empty_catalog_is_fatal(self, graph, picker):
        ctx = SessionContext(current_track=make_track("CUR"))
        with pytest.raises(ExhaustionError):
            await recommend_next(ctx, InMemoryTrackStore(), graph, picker=picker, now=NOW)


class TestRecommendationService:
    async def test_unknown_track_returns_none(self, graph, quota):
        service = RecommendationService(InMemoryTrackStore(), graph, quota)
        assert await service.recommend(tid("NOPE")) is None

    async def test_malformed_id_returns_none(self, graph, quota):
        service = RecommendationService(InMemoryTrackStore(), graph, quota)
        assert await service.recommend("not-an-id") is None

    async def test_unknown_track_fetched_upstream(self, graph, quota, upstream):
        store = InMemoryTrackStore([make_track("P", genres=["pop"])])
        upstream.detail_results[tid("NEW")] = make_track("NEW", genres=[], title="Pop anthem")
        service = RecommendationService(store, graph, quota, upstream=upstream)

        result = await service.recommend(tid("NEW"))

        assert result is not None
        assert await store.find_by_external_id(tid("NEW")) is not None
        assert quota.consumed >= 1

    async def test_listener_profile_used(self, graph, quota, library):
        tracks = [make_track("CUR", channel_id="c1")] + [
            make_track(f"T{i}", channel_id="c1") for i in range(3)
        ]
        library.seed("u1", liked=[tid("T2")], recently_played=[tid("T0")])
        service = RecommendationService(
            InMemoryTrackStore(tracks), graph, quota, library=library,
            picker=WeightedPicker(FixedRandom(0.9, 0.0)),
        )
        result = await service.recommend(tid("CUR"), user_id="u1")
        assert result.next_track.track_id == tid("T2")
        assert result.method == SelectionMethod.FAMILIAR

    async def test_unreachable_datastore_returns_none(self, graph, quota):
        store = InMemoryTrackStore([make_track("CUR")])

        async def offline(*args, **kwargs):
            raise ConnectionError("datastore down")

        store.find_by_external_id = offline
        service = RecommendationService(store, graph, quota)
        assert await service.recommend(tid("CUR")) is None

    async def test_failed_related_lookup_is_charged(self, graph, quota, upstream):
        tracks = [make_track("CUR", channel_id="c1")] + [
            make_track(f"T{i}", channel_id="c1") for i in range(3)
        ]

        async def broken(track_id, max_results=10):
            raise RuntimeError("related lookup dropped")

        upstream.related_by = broken
        service = RecommendationService(InMemoryTrackStore(tracks), graph, quota, upstream=upstream)

        result = await service.recommend(tid("CUR"))

        assert result is not None
        assert quota.consumed == 101
