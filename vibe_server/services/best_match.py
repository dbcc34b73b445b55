"""
Best-match search: find the single upstream result that is the song a free-text query names.

1. Canonical lookup (unmetered) gives the golden (title, artist, duration) record.
2. A precision query `"<artist>" "<title>" audio` goes upstream (quota permitting).
3. The top results are scored against the golden record; anything outside the duration gate
   is discarded, the best passing score wins.
4. Otherwise the raw top search result is returned with is_best_match=False.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel

from recommender.errors import TransientProviderError
from recommender.models.track import Track

from .canonical_lookup import CanonicalLookup, CanonicalRecord
from .match_scoring import DEFAULT_MATCH_CONFIG, MatchScore, MatchScoringConfig, score_match
from .quota_tracker import QuotaOperation, QuotaTracker
from .resolution_cache import ResolutionCache
from .upstream_provider import UpstreamProvider

logger = logging.getLogger(__name__)


class BestMatchResult(BaseModel):
    track: Optional[Track] = None
    is_best_match: bool = False
    match_score: Optional[float] = None
    duration_delta: Optional[float] = None
    canonical: Optional[CanonicalRecord] = None


def precision_query(record: CanonicalRecord) -> str:
    return f'"{record.artist}" "{record.title}" audio'


def pick_best(
    candidates: List[Track],
    record: CanonicalRecord,
    config: MatchScoringConfig = DEFAULT_MATCH_CONFIG,
) -> Optional[tuple]:
    """Best (track, MatchScore) among the first N candidates passing the duration gate."""
    best: Optional[tuple] = None
    for track in candidates[: config.candidates_examined]:
        scored: MatchScore = score_match(track, record, config)
        if scored.duration_delta > config.duration_gate_seconds:
            logger.debug("[best-match] %s rejected: %.1fs off", track.track_id, scored.duration_delta)
            continue
        if best is None or scored.score > best[1].score:
            best = (track, scored)
    if best is None or best[1].score < config.pass_threshold:
        return None
    return best


class BestMatchService:
    def __init__(
        self,
        resolution: ResolutionCache,
        quota: QuotaTracker,
        canonical: Optional[CanonicalLookup] = None,
        upstream: Optional[UpstreamProvider] = None,
        config: MatchScoringConfig = DEFAULT_MATCH_CONFIG,
    ):
        self.resolution = resolution
        self.quota = quota
        self.canonical = canonical
        self.upstream = upstream
        self.config = config

    async def _precision_search(self, record: CanonicalRecord) -> List[Track]:
        if self.upstream is None or not self.quota.can_afford(QuotaOperation.SEARCH):
            return []
        query = precision_query(record)
        try:
            results = await self.upstream.search(query, self.config.candidates_examined)
        except TransientProviderError as exc:
            logger.warning("[best-match] precision search failed: %s", exc)
            return []
        except Exception:
            logger.exception("[best-match] precision search rejected for %r", query)
            return []
        finally:
            self.quota.record(QuotaOperation.SEARCH)
        self.quota.record(QuotaOperation.DETAIL, len(results))
        return results

    async def find_best_match(self, query: str) -> BestMatchResult:
        record = await self.canonical.lookup(query) if self.canonical is not None else None

        if record is not None:
            candidates = await self._precision_search(record)
            best = pick_best(candidates, record, self.config)
            if best is not None:
                track, scored = best
                stored = await self.resolution.store_discovered([track])
                logger.info("[best-match] %r -> %s (score %.1f)", query, track.track_id, scored.score)
                return BestMatchResult(
                    track=stored[0] if stored else track,
                    is_best_match=True,
                    match_score=scored.score,
                    duration_delta=scored.duration_delta,
                    canonical=record,
                )
            logger.info("[best-match] no candidate passed for %r; using raw search", query)

        fallback = await self.resolution.search(query, 1)
        return BestMatchResult(
            track=fallback.tracks[0] if fallback.tracks else None,
            is_best_match=False,
            canonical=record,
        )
