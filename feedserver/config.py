"""Configuration management for the feed service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger("feedserver.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "feed"
DEFAULT_TOKEN_TTL_SECONDS = 3600
DEFAULT_PASSWORD_ROUNDS = 12
DEFAULT_POSTS_PER_PAGE = 2

_ENV_KEYS: Dict[str, str] = {
    "FEED_MONGO_URI": "mongo_uri",
    "FEED_DB_NAME": "database_name",
    "FEED_TOKEN_SECRET": "token_secret",
    "FEED_TOKEN_TTL_SECONDS": "token_ttl_seconds",
    "FEED_PASSWORD_ROUNDS": "password_rounds",
    "FEED_IMAGE_DIR": "image_dir",
    "FEED_POSTS_PER_PAGE": "posts_per_page",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the feed service."""

    token_secret: str
    mongo_uri: str = DEFAULT_MONGO_URI
    database_name: str = DEFAULT_DATABASE_NAME
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    password_rounds: int = DEFAULT_PASSWORD_ROUNDS
    image_dir: Path = _PROJECT_ROOT / "images"
    posts_per_page: int = DEFAULT_POSTS_PER_PAGE

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw mapping data, generating a secret if needed."""

        secret = data.get("token_secret")
        if secret:
            token_secret = str(secret)
        else:
            logger.warning(
                "No token secret configured; generated a per-process secret. Tokens will not"
                " survive a restart. Set FEED_TOKEN_SECRET for stable sessions."
            )
            token_secret = secrets.token_urlsafe(32)

        raw_image_dir = data.get("image_dir")
        if raw_image_dir:
            image_dir = Path(str(raw_image_dir)).expanduser()
            if not image_dir.is_absolute() and base_path is not None:
                image_dir = base_path / image_dir
            image_dir = image_dir.resolve(strict=False)
        else:
            image_dir = _PROJECT_ROOT / "images"

        ttl = int(data.get("token_ttl_seconds", DEFAULT_TOKEN_TTL_SECONDS))
        if ttl <= 0:
            raise ValueError("token_ttl_seconds must be positive")
        rounds = int(data.get("password_rounds", DEFAULT_PASSWORD_ROUNDS))
        if not 4 <= rounds <= 31:
            raise ValueError("password_rounds must be between 4 and 31")
        per_page = int(data.get("posts_per_page", DEFAULT_POSTS_PER_PAGE))
        if per_page <= 0:
            raise ValueError("posts_per_page must be positive")

        return Settings(
            token_secret=token_secret,
            mongo_uri=str(data.get("mongo_uri") or DEFAULT_MONGO_URI),
            database_name=str(data.get("database_name") or DEFAULT_DATABASE_NAME),
            token_ttl_seconds=ttl,
            password_rounds=rounds,
            image_dir=image_dir,
            posts_per_page=per_page,
        )

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_PROJECT_ROOT / "config" / "feed.yaml").resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from the YAML file (when present) and apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("FEED_CONFIG"))

    raw: Dict[str, object] = {}
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw.update(loaded)
        logger.info("Loaded configuration from %s", path)

    for env_key, field_name in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value.strip():
            raw[field_name] = value.strip()

    return Settings.from_dict(raw, base_path=path.parent)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
