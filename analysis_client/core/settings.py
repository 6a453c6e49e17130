from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _storage_root() -> Path:
    env_root = os.getenv("ANALYSIS_STORAGE_ROOT")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / "storage"


@dataclass(slots=True)
class Settings:
    """Runtime configuration of the analysis client."""

    api_base_url: str = DEFAULT_API_BASE_URL
    poll_interval_ms: int = 1000
    max_poll_attempts: int = 150
    cooldown_ms: int = 2000
    history_max_items: int = 20
    storage_root: Path = field(default_factory=_storage_root)
    storage_quota_bytes: int = 5 * 1024 * 1024
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_redirect_url: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    log_level: str = "INFO"

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def cooldown(self) -> float:
        return self.cooldown_ms / 1000

    @property
    def redirect_url(self) -> str:
        return self.auth_redirect_url or f"{self.api_base_url}/auth/callback"

    @classmethod
    def from_env(cls) -> "Settings":
        base_url = (os.getenv("ANALYSIS_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/")

        origins_env = os.getenv("API_CORS_ORIGINS", "")
        origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]

        return cls(
            api_base_url=base_url,
            poll_interval_ms=_env_int("ANALYSIS_POLL_INTERVAL_MS", 1000),
            max_poll_attempts=_env_int("ANALYSIS_MAX_POLL_ATTEMPTS", 150),
            cooldown_ms=_env_int("ANALYSIS_COOLDOWN_MS", 2000),
            history_max_items=_env_int("ANALYSIS_HISTORY_MAX_ITEMS", 20),
            storage_root=_storage_root(),
            storage_quota_bytes=_env_int("ANALYSIS_STORAGE_QUOTA_BYTES", 5 * 1024 * 1024),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY") or None,
            auth_redirect_url=os.getenv("AUTH_REDIRECT_URL") or None,
            cors_origins=origins or list(DEFAULT_CORS_ORIGINS),
            log_level=os.getenv("LOG_LEVEL") or "INFO",
        )
