"""Shared utilities: rule-based vibe inference and its keyword tables."""

from .inference import VibeInference, apply_inference, ensure_inferred, infer_track, infer_vibe
from .vocabulary import DEFAULT_GENRE, INSTRUMENTAL_LANGUAGE, UNKNOWN_LANGUAGE

__all__ = [
    "DEFAULT_GENRE",
    "INSTRUMENTAL_LANGUAGE",
    "UNKNOWN_LANGUAGE",
    "VibeInference",
    "apply_inference",
    "ensure_inferred",
    "infer_track",
    "infer_vibe",
]
