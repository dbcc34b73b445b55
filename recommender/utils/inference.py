"""
Genre / language / culture inference over free text.

Pure and deterministic: the same text always yields the same VibeInference.
Matching is plain case-insensitive substring search against the vocabulary tables.
"""

from typing import List

from pydantic import BaseModel

from ..models.track import Track
from .vocabulary import (
    CULTURE_CONFIDENCE,
    CULTURE_KEYWORDS,
    DEFAULT_GENRE,
    GENRE_CONFIDENCE,
    GENRE_KEYWORDS,
    LANGUAGE_CONFIDENCE,
    LANGUAGE_PATTERNS,
    UNKNOWN_LANGUAGE,
)


class VibeInference(BaseModel):
    genres: List[str]
    language: str
    culture_tags: List[str]
    confidence: float


def infer_vibe(text: str) -> VibeInference:
    """
    Infer genres (never empty), language (first match or "unknown"), culture tags,
    and a confidence in [0, 1].
    """
    haystack = (text or "").lower()
    confidence = 0.0

    genres = []
    for genre, keywords in GENRE_KEYWORDS.items():
        if any(kw in haystack for kw in keywords):
            genres.append(genre)
            confidence += GENRE_CONFIDENCE

    language = UNKNOWN_LANGUAGE
    for code, patterns in LANGUAGE_PATTERNS.items():
        if any(p.search(haystack) for p in patterns):
            language = code
            confidence += LANGUAGE_CONFIDENCE
            break

    culture_tags = []
    for culture, keywords in CULTURE_KEYWORDS.items():
        if any(kw in haystack for kw in keywords):
            culture_tags.append(culture)
            confidence += CULTURE_CONFIDENCE

    if not genres:
        genres = [DEFAULT_GENRE]

    return VibeInference(
        genres=genres,
        language=language,
        culture_tags=culture_tags,
        confidence=min(round(confidence, 4), 1.0),
    )


def infer_track(track: Track) -> VibeInference:
    return infer_vibe(track.inference_text())


def apply_inference(track: Track) -> Track:
    """Return a copy of track with inferred genres, language and culture tags."""
    inference = infer_track(track)
    return track.model_copy(
        update={
            "genres": inference.genres,
            "language": inference.language,
            "culture_tags": inference.culture_tags,
        }
    )


def ensure_inferred(track: Track) -> Track:
    """Apply inference only when the track carries no genres yet."""
    if track.genres:
        return track
    return apply_inference(track)
