"""
Server Configuration

Loads configuration from environment variables and provides defaults.
A project-root .env file is loaded first using python-dotenv.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from recommender.models.config import RecommendationConfig

BASE_DIR = Path(__file__).resolve().parent.parent

root_env = BASE_DIR / ".env"
if root_env.exists():
    load_dotenv(root_env)

DATA_SOURCES = ("memory", "firebase")


def _int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return int(value)


def _path_env(key: str) -> Optional[Path]:
    v = os.getenv(key)
    if not v:
        return None
    p = Path(v)
    return p if p.is_absolute() else (BASE_DIR / p).resolve()


@dataclass
class ServerConfig:
    """Server configuration."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Data source: "memory" (in-process stores) | "firebase"
    data_source: str = "memory"
    firebase_credentials_path: Optional[Path] = None
    firebase_project_id: Optional[str] = None

    # Upstream provider
    youtube_api_key: Optional[str] = None

    # Tier 2: distributed cache
    redis_url: Optional[str] = None

    # Tier 1: object store
    s3_bucket: Optional[str] = None
    aws_region: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    # Optional JSON file merged over RecommendationConfig defaults
    recommender_config_path: Optional[Path] = None

    # Quota and cache lifetimes
    quota_daily_budget: int = 10_000
    audio_url_ttl_seconds: int = 6 * 3600
    signed_url_ttl_seconds: int = 6 * 3600
    search_cache_ttl_seconds: int = 3600
    archive_play_threshold: int = 10

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        data_source = os.getenv("DATA_SOURCE", "").strip().lower() or "memory"
        if data_source not in DATA_SOURCES:
            data_source = "memory"

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_env("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            data_source=data_source,
            firebase_credentials_path=_path_env("FIREBASE_CREDENTIALS_PATH") or _path_env("GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            youtube_api_key=os.getenv("YOUTUBE_API_KEY") or None,
            redis_url=os.getenv("REDIS_URL") or None,
            s3_bucket=os.getenv("S3_BUCKET") or None,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID") or None,
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY") or None,
            recommender_config_path=_path_env("RECOMMENDER_CONFIG_PATH"),
            quota_daily_budget=_int_env("QUOTA_DAILY_BUDGET", 10_000),
            audio_url_ttl_seconds=_int_env("AUDIO_URL_TTL_SECONDS", 6 * 3600),
            signed_url_ttl_seconds=_int_env("SIGNED_URL_TTL_SECONDS", 6 * 3600),
            search_cache_ttl_seconds=_int_env("SEARCH_CACHE_TTL_SECONDS", 3600),
            archive_play_threshold=_int_env("ARCHIVE_PLAY_THRESHOLD", 10),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate the configuration.

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if self.data_source == "firebase":
            if not self.firebase_credentials_path:
                errors.append("DATA_SOURCE=firebase requires FIREBASE_CREDENTIALS_PATH")
            elif not Path(self.firebase_credentials_path).is_file():
                errors.append(f"Firebase credentials file not found: {self.firebase_credentials_path}")

        if self.recommender_config_path and not Path(self.recommender_config_path).is_file():
            errors.append(f"Recommender config not found: {self.recommender_config_path}")

        if self.quota_daily_budget <= 0:
            errors.append("QUOTA_DAILY_BUDGET must be positive")

        for name in ("audio_url_ttl_seconds", "signed_url_ttl_seconds", "search_cache_ttl_seconds"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive")

        # YouTube, Redis and S3 are optional: a missing tier is disabled, not an error.

        return len(errors) == 0, errors

    def load_recommendation_config(self) -> RecommendationConfig:
        """RecommendationConfig from RECOMMENDER_CONFIG_PATH, or the defaults."""
        if not self.recommender_config_path:
            return RecommendationConfig()
        with open(self.recommender_config_path) as f:
            return RecommendationConfig.from_dict(json.load(f))


# Global config instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def reload_config() -> ServerConfig:
    """Reload configuration from environment."""
    global _config
    _config = None
    return get_config()
