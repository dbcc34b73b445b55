"""
Pipeline Stage Tests

Covers each stage in isolation: session context, vibe filter (language lock),
dedup (precedence + history exclusion), ranking (bounded composite score),
selection (80/20 familiar/discovery split) and the fallback ladder.

Run:
----
    pytest tests/test_pipeline_stages.py -v
"""

import pytest
from conftest import FixedRandom, make_track, tid

from recommender.errors import ExhaustionError
from recommender.models.config import RecommendationConfig
from recommender.models.scoring import Candidate, CandidateSource, ScoreBreakdown, ScoredCandidate, SelectionMethod
from recommender.models.session import SessionContext
from recommender.stages.context import build_session_context
from recommender.stages.dedup import deduplicate
from recommender.stages.fallback import fallback_pick
from recommender.stages.ranking import rank_candidates, score_candidate
from recommender.stages.ranking.breakdown import artist_repetition_penalty
from recommender.stages.selection import WeightedPicker, smart_select
from recommender.stages.vibe_filter import apply_vibe_filter
from vibe_server.services.track_store import InMemoryTrackStore


def _ctx(current=None, **kwargs) -> SessionContext:
    return SessionContext(current_track=current or make_track("CUR"), **kwargs)


def _cand(name, source=CandidateSource.RELATED, **kwargs) -> Candidate:
    return Candidate(track=make_track(name, **kwargs), source=source)


def _scored(name, score, familiar) -> ScoredCandidate:
    return ScoredCandidate(
        track=make_track(name),
        breakdown=ScoreBreakdown(),
        score=score,
        source=CandidateSource.RELATED,
        is_familiar=familiar,
        is_discovery=not familiar,
    )


class TestSessionContext:
    async def test_anonymous_without_user(self):
        ctx = await build_session_context(make_track("CUR"))
        assert ctx.is_anonymous
        assert ctx.affinity_track_ids == []

    async def test_history_bounded_and_deduplicated(self):
        history = [tid(f"H{i}") for i in range(30)] + [tid("H0")]
        ctx = await build_session_context(make_track("CUR"), recent_history=history)
        assert len(ctx.recent_history) == 20
        assert len(set(ctx.recent_history)) == len(ctx.recent_history)
        assert ctx.recent_history[0] == tid("H0")

    async def test_profile_loaded(self, library):
        library.seed(
            "u1",
            liked=[tid("L2"), tid("L1")],
            listen_counts={tid("P"): 4},
            recently_played=[tid("R1"), tid("L1")],
        )
        ctx = await build_session_context(make_track("CUR"), user_id="u1", library=library)
        assert not ctx.is_anonymous
        assert ctx.recent_history == [tid("R1"), tid("L1")]
        assert ctx.affinity_track_ids == [tid("L1"), tid("L2"), tid("R1")]
        assert ctx.listen_count(tid("P")) == 4

    async def test_request_history_overrides_profile(self, library):
        library.seed("u1", recently_played=[tid("R1")])
        ctx = await build_session_context(
            make_track("CUR"), user_id="u1", recent_history=[tid("Q")], library=library
        )
        assert ctx.recent_history == [tid("Q")]

    async def test_library_failure_degrades(self):
        class Broken:
            async def get_profile(self, user_id):
                raise RuntimeError("down")

        ctx = await build_session_context(make_track("CUR"), user_id="u1", library=Broken())
        assert ctx.user_id == "u1"
        assert not ctx.is_anonymous
        assert ctx.liked_track_ids == set()


class TestVibeFilter:
    def test_language_lock_for_distinct_language(self):
        ctx = _ctx(make_track("CUR", genres=["kompa"], language="ht"))
        candidates = [
            _cand("HT", language="ht"),
            _cand("EN", language="en"),
            _cand("INS", language="instrumental"),
            _cand("UNK", language="unknown"),
            _cand("FR", language="fr"),
        ]
        kept = [c.track.track_id for c in apply_vibe_filter(candidates, ctx)]
        assert kept == [tid("HT"), tid("INS"), tid("UNK")]

    def test_default_locale_does_not_lock(self):
        ctx = _ctx(make_track("CUR", language="en"))
        candidates = [_cand("EN", language="en"), _cand("FR", language="fr")]
        assert len(apply_vibe_filter(candidates, ctx)) == 2

    def test_unknown_language_does_not_lock(self):
        ctx = _ctx(make_track("CUR", language="unknown"))
        assert len(apply_vibe_filter([_cand("FR", language="fr")], ctx)) == 1

    def test_blocked_dropped(self):
        ctx = _ctx(blocked_track_ids={tid("B")})
        assert apply_vibe_filter([_cand("B"), _cand("OK")], ctx)[0].track.track_id == tid("OK")


class TestDedup:
    def test_excludes_current_and_history(self):
        ctx = _ctx(recent_history=[tid("H")])
        kept = deduplicate([_cand("CUR"), _cand("H"), _cand("NEW")], ctx)
        assert [c.track.track_id for c in kept] == [tid("NEW")]

    def test_precedence_graph_wins(self):
        ctx = _ctx()
        candidates = [
            _cand("X", CandidateSource.RELATED),
            _cand("X", CandidateSource.TRENDING),
            _cand("X", CandidateSource.GRAPH),
            _cand("Y", CandidateSource.USER_HISTORY),
        ]
        kept = deduplicate(candidates, ctx)
        assert [(c.track.track_id, c.source) for c in kept] == [
            (tid("X"), CandidateSource.GRAPH),
            (tid("Y"), CandidateSource.USER_HISTORY),
        ]

    def test_unique_ids(self):
        ctx = _ctx(recent_history=[tid("A")])
        names = ["A", "B", "B", "C", "A", "D", "C"]
        kept = deduplicate([_cand(n) for n in names], ctx)
        ids = [c.track.track_id for c in kept]
        assert len(ids) == len(set(ids))
        assert tid("A") not in ids

    def test_malformed_id_skipped(self):
        bad = Candidate(track=make_track("OK").model_copy(update={"external_id": "short"}),
                        source=CandidateSource.RELATED)
        assert deduplicate([bad, _cand("OK")], _ctx())[0].track.track_id == tid("OK")


class TestRanking:
    def test_scores_bounded(self):
        ctx = _ctx(
            make_track("CUR", genres=["kompa", "zouk", "pop", "jazz", "rock"], culture_tags=["Caribbean"]),
            liked_track_ids={tid("MAX")},
            followed_channel_ids={"chan"},
            recent_history=[tid("PEN")],
        )
        candidates = [
            _cand("MAX", genres=["kompa", "zouk", "pop", "jazz", "rock"], culture_tags=["Caribbean"],
                  channel_id="chan", view_count=50_000_000),
            _cand("PEN", genres=["metal"], language="fr"),
            _cand("MID", genres=["pop"], view_count=20_000),
        ]
        scored = rank_candidates(candidates, ctx, {tid("MAX"): 1.0})
        assert all(0.0 <= s.score <= 100.0 for s in scored)
        assert scored[0].track.track_id == tid("MAX")
        assert scored[-1].track.track_id == tid("PEN")
        assert scored[-1].score == 0.0

    def test_breakdown_values(self):
        ctx = _ctx(make_track("CUR", genres=["pop", "rock"]), listen_counts={tid("A"): 6})
        s = score_candidate(_cand("A", genres=["pop", "rock"], view_count=2_000_000), ctx, {tid("A"): 0.125})
        assert s.breakdown.similarity == 30.0  # 2 genres + language
        assert s.breakdown.familiarity == 20.0  # > 5 listens
        assert s.breakdown.continuity == 12.5
        assert s.breakdown.discovery == 0.0
        assert s.breakdown.popularity == 7.0
        assert s.score == 69.5
        assert s.is_familiar

    def test_unplayed_is_discovery(self):
        s = score_candidate(_cand("A"), _ctx(), {})
        assert s.is_discovery and not s.is_familiar
        assert s.breakdown.discovery == 5.0

    def test_artist_repetition_penalty_is_zero(self):
        assert artist_repetition_penalty(make_track("A"), _ctx()) == 0.0


class TestSelection:
    def test_familiar_on_high_roll(self):
        scored = [_scored("D1", 90, False), _scored("F1", 50, True), _scored("F2", 50, True)]
        # roll 0.9 -> familiar; pick 0.1 of total 100 -> first familiar
        picker = WeightedPicker(FixedRandom(0.9, 0.1))
        selected, method, top = smart_select(scored, picker)
        assert method == SelectionMethod.FAMILIAR
        assert selected.track.track_id == tid("F1")
        assert len(top) == 3

    def test_discovery_on_low_roll(self):
        scored = [_scored("F1", 90, True), _scored("D1", 40, False), _scored("D2", 60, False)]
        picker = WeightedPicker(FixedRandom(0.1, 0.9))
        selected, method, _ = smart_select(scored, picker)
        assert method == SelectionMethod.DISCOVERY
        assert selected.track.track_id == tid("D2")

    def test_discovery_when_no_familiar(self):
        scored = [_scored("D1", 90, False)]
        _, method, _ = smart_select(scored, WeightedPicker(FixedRandom(0.99, 0.0)))
        assert method == SelectionMethod.DISCOVERY

    def test_random_when_only_familiar_and_low_roll(self):
        scored = [_scored("F1", 90, True), _scored("F2", 80, True)]
        selected, method, _ = smart_select(scored, WeightedPicker(FixedRandom(0.1)))
        assert method == SelectionMethod.RANDOM
        assert selected.track.track_id == tid("F1")

    def test_only_top_n_considered(self):
        scored = [_scored(f"D{i}", 100 - i, False) for i in range(8)]
        _, _, top = smart_select(scored, WeightedPicker(FixedRandom(0.5, 0.99)))
        assert [s.track.track_id for s in top] == [tid(f"D{i}") for i in range(5)]

    def test_zero_weights_pick_first(self):
        picker = WeightedPicker(FixedRandom(0.7))
        items = [_scored("A", 0, False), _scored("B", 0, False)]
        assert picker.pick(items).track.track_id == tid("A")


class TestFallback:
    async def test_rung_one_genre_matches(self, picker):
        store = InMemoryTrackStore(
            [make_track(f"K{i}", genres=["kompa"], play_count=10 + i) for i in range(6)]
            + [make_track("P", genres=["pop"], play_count=100)]
        )
        ctx = _ctx(make_track("CUR", genres=["kompa"]))
        track, alternatives, rung = await fallback_pick(ctx, store, picker)
        assert rung == 1
        assert "kompa" in track.genres
        assert len(alternatives) == 5

    async def test_rung_two_when_no_genre_match(self, picker):
        store = InMemoryTrackStore([make_track("P", genres=["pop"])])
        ctx = _ctx(make_track("CUR", genres=["kompa"]))
        track, _, rung = await fallback_pick(ctx, store, picker)
        assert rung == 2
        assert track.track_id == tid("P")

    async def test_rung_three_allows_repeats(self, picker):
        store = InMemoryTrackStore([make_track("CUR", genres=["kompa"]), make_track("H", genres=["pop"])])
        ctx = _ctx(make_track("CUR", genres=["kompa"]), recent_history=[tid("H")])
        track, _, rung = await fallback_pick(ctx, store, picker)
        assert rung == 3
        assert track.track_id in (tid("CUR"), tid("H"))

    async def test_empty_catalog_raises(self, picker):
        with pytest.raises(ExhaustionError):
            await fallback_pick(_ctx(), InMemoryTrackStore(), picker)

    async def test_pick_within_window(self):
        store = InMemoryTrackStore(
            [make_track(f"T{i:02d}", genres=["pop"], play_count=100 - i) for i in range(20)]
        )
        config = RecommendationConfig()
        picker = WeightedPicker(FixedRandom(0.999))
        track, _, _ = await fallback_pick(_ctx(make_track("CUR", genres=["pop"])), store, picker, config)
        # Uniform among the 10 most popular: 0.999 -> index 9.
        assert track.track_id == tid("T09")
