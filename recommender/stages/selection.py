"""
Stage 5: Selection Policy (80/20 familiar / discovery split)

Takes the top-N scored candidates, splits them into familiar vs discovery, rolls once,
and makes a score-weighted random pick from the chosen group. Randomness comes from an
injectable RandomSource so tests can supply a fixed sequence.
"""

import random
from typing import List, Optional, Protocol, Sequence, Tuple

from ..models.config import RecommendationConfig, DEFAULT_CONFIG
from ..models.scoring import ScoredCandidate, SelectionMethod


class RandomSource(Protocol):
    def random(self) -> float:
        """Uniform float in [0, 1)."""
        ...


class WeightedPicker:
    """Score-weighted random choice. A zero total weight picks the first item."""

    def __init__(self, rng: Optional[RandomSource] = None):
        self.rng = rng or random.Random()

    def roll(self) -> float:
        return self.rng.random()

    def pick(self, candidates: Sequence[ScoredCandidate]) -> ScoredCandidate:
        if not candidates:
            raise ValueError("cannot pick from an empty sequence")
        total = sum(c.score for c in candidates)
        if total <= 0:
            return candidates[0]
        remaining = self.rng.random() * total
        for candidate in candidates:
            remaining -= candidate.score
            if remaining <= 0:
                return candidate
        return candidates[0]

    def pick_index(self, size: int) -> int:
        """Uniform index in [0, size)."""
        if size <= 0:
            raise ValueError("size must be positive")
        return min(int(self.rng.random() * size), size - 1)


def smart_select(
    scored: List[ScoredCandidate],
    picker: WeightedPicker,
    config: RecommendationConfig = DEFAULT_CONFIG,
) -> Tuple[ScoredCandidate, SelectionMethod, List[ScoredCandidate]]:
    """
    Return (selected, method, alternatives). scored must be sorted and non-empty.

    roll > discovery_roll_threshold and familiar non-empty -> weighted pick from familiar;
    else discovery non-empty -> weighted pick from discovery; else the top candidate.
    """
    if not scored:
        raise ValueError("no candidates to select from")
    top = scored[: config.selection_top_n]
    familiar = [c for c in top if c.is_familiar]
    discovery = [c for c in top if c.is_discovery]

    roll = picker.roll()
    if roll > config.discovery_roll_threshold and familiar:
        return picker.pick(familiar), SelectionMethod.FAMILIAR, top
    if discovery:
        return picker.pick(discovery), SelectionMethod.DISCOVERY, top
    return top[0], SelectionMethod.RANDOM, top
