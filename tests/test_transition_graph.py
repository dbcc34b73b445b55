"""
Transition Graph Tests

Probabilities are count / total out of a node over completed transitions within
the retention window. Duplicates strengthen an edge; records past retention are ignored
and can be purged.

Run:
----
    pytest tests/test_transition_graph.py -v
"""

from conftest import tid

from recommender.models.transition import TransitionProbability


async def _record_many(graph, frm, to, n, **kwargs):
    for i in range(n):
        await graph.record(tid(frm), tid(to), f"s{i}", **kwargs)


class TestProbabilities:
    async def test_eight_to_two_split(self, graph):
        await _record_many(graph, "A", "B", 8)
        await _record_many(graph, "A", "C", 2)

        result = await graph.probabilities(tid("A"))

        assert result == [
            TransitionProbability(to_track_id=tid("B"), probability=0.8, count=8),
            TransitionProbability(to_track_id=tid("C"), probability=0.2, count=2),
        ]

    async def test_unseen_node_is_empty(self, graph):
        assert await graph.probabilities(tid("Z")) == []

    async def test_sum_never_exceeds_one(self, graph):
        for name, n in (("B", 3), ("C", 5), ("D", 1), ("E", 7)):
            await _record_many(graph, "A", name, n)
        full = await graph.probabilities(tid("A"))
        truncated = await graph.probabilities(tid("A"), limit=2)
        assert abs(sum(p.probability for p in full) - 1.0) < 1e-9
        assert sum(p.probability for p in truncated) <= 1.0
        assert [p.to_track_id for p in truncated] == [tid("E"), tid("C")]

    async def test_incomplete_transitions_ignored(self, graph):
        await _record_many(graph, "A", "B", 2)
        await _record_many(graph, "A", "C", 5, completed=False)
        result = await graph.probabilities(tid("A"))
        assert [(p.to_track_id, p.probability) for p in result] == [(tid("B"), 1.0)]

    async def test_top_next_excludes_skips(self, graph):
        await _record_many(graph, "A", "B", 3, skipped=True)
        await _record_many(graph, "A", "C", 1)
        assert [p.to_track_id for p in await graph.probabilities(tid("A"))] == [tid("B"), tid("C")]
        assert [p.to_track_id for p in await graph.top_next(tid("A"))] == [tid("C")]


class TestRetention:
    async def test_old_records_ignored(self, graph, clock):
        await _record_many(graph, "A", "B", 4)
        clock.advance(days=91)
        await _record_many(graph, "A", "C", 1)
        result = await graph.probabilities(tid("A"))
        assert [p.to_track_id for p in result] == [tid("C")]

    async def test_purge_expired(self, graph, clock, transition_store):
        await _record_many(graph, "A", "B", 4)
        clock.advance(days=91)
        await _record_many(graph, "A", "C", 1)
        assert await graph.purge_expired() == 4
        assert len(transition_store) == 1


class TestTrending:
    async def test_trending_pairs_in_window(self, graph, clock):
        await _record_many(graph, "X", "Y", 5)
        clock.advance(hours=30)
        await _record_many(graph, "A", "B", 2)
        await _record_many(graph, "C", "D", 3)
        result = await graph.trending(window_hours=24)
        assert [(t.from_track_id, t.to_track_id, t.count) for t in result] == [
            (tid("C"), tid("D"), 3),
            (tid("A"), tid("B"), 2),
        ]
