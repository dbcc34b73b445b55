"""
Error taxonomy shared by the recommendation pipeline and the resolution path.

Only ExhaustionError is allowed to cross a public boundary. The others are raised
internally and mapped to an empty result, a retry, a disabled tier, or a skipped record.
"""

import re

# Provider ids: 11 chars of URL-safe base64 alphabet.
EXTERNAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")


class VibeShuffleError(Exception):
    """Base class for all domain errors."""


class NotFoundError(VibeShuffleError):
    """Unknown track id. Surfaced to callers as an empty result."""


class TransientProviderError(VibeShuffleError):
    """Network failure or rate limit from the upstream provider. Retried, then degraded."""


class ConfigurationError(VibeShuffleError):
    """Missing credentials for a tier. The tier stays disabled for the process lifetime."""


class DataIntegrityError(VibeShuffleError):
    """Malformed external id or record. Logged and skipped."""


class ExhaustionError(VibeShuffleError):
    """No fallback rung produced a track (empty catalog)."""


def validate_external_id(external_id: str) -> str:
    """Return the id unchanged, or raise DataIntegrityError if it is not a provider id."""
    if not isinstance(external_id, str) or not EXTERNAL_ID_PATTERN.match(external_id):
        raise DataIntegrityError(f"malformed external id: {external_id!r}")
    return external_id


def is_valid_external_id(external_id: str) -> bool:
    return bool(isinstance(external_id, str) and EXTERNAL_ID_PATTERN.match(external_id))
