"""Centralised settings for the Orbit crawl engine.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

Engine classes take their tunables as constructor arguments; the values
below are only the defaults used when a caller does not pass its own.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _resolve_executable_path() -> Optional[str]:
    """Return an explicit Chromium path, or ``None`` to use Playwright's bundle.

    ``BROWSER_EXECUTABLE_PATH`` wins; otherwise a system ``chromium`` binary
    on ``PATH`` is used when present (Nix-style environments ship one).
    """
    explicit = os.environ.get("BROWSER_EXECUTABLE_PATH")
    if explicit:
        return explicit
    return shutil.which("chromium") or shutil.which("chromium-browser")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("ORBIT_WORKSPACE", Path.home() / ".orbit_crawler")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "crawler.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Browser
    # ------------------------------------------------------------------
    browser_headless: bool = field(
        default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true")
    )
    browser_executable_path: Optional[str] = field(
        default_factory=_resolve_executable_path
    )
    viewport_width: int = field(
        default_factory=lambda: int(os.environ.get("BROWSER_VIEWPORT_WIDTH", "1920"))
    )
    viewport_height: int = field(
        default_factory=lambda: int(os.environ.get("BROWSER_VIEWPORT_HEIGHT", "1080"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get("BROWSER_USER_AGENT", _DEFAULT_USER_AGENT)
    )

    # ------------------------------------------------------------------
    # Page fetch
    # ------------------------------------------------------------------
    navigation_timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("NAVIGATION_TIMEOUT_MS", "45000"))
    )
    selector_timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("SELECTOR_TIMEOUT_MS", "10000"))
    )
    settle_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("SETTLE_DELAY_MS", "2000"))
    )
    post_scroll_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("POST_SCROLL_DELAY_MS", "1000"))
    )
    scroll_step_px: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_STEP_PX", "400"))
    )
    max_scroll_steps: int = field(
        default_factory=lambda: int(os.environ.get("MAX_SCROLL_STEPS", "10"))
    )
    min_content_length: int = field(
        default_factory=lambda: int(os.environ.get("MIN_CONTENT_LENGTH", "1000"))
    )

    # ------------------------------------------------------------------
    # Crawl budget
    # ------------------------------------------------------------------
    max_pages: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_PAGES", "5"))
    )
    stop_after_empty_pages: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_STOP_AFTER_EMPTY", "3"))
    )
    rate_limit_ms: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_RATE_LIMIT_MS", "500"))
    )
    max_links_per_page: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_LINKS_PER_PAGE", "10"))
    )

    # ------------------------------------------------------------------
    # Domain risk
    # ------------------------------------------------------------------
    default_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("RISK_DEFAULT_DELAY_MS", "2000"))
    )
    max_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("RISK_MAX_DELAY_MS", "60000"))
    )
    delay_multiplier: float = field(
        default_factory=lambda: float(os.environ.get("RISK_DELAY_MULTIPLIER", "2.0"))
    )

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------
    cache_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_TTL_HOURS", "24"))
    )
    cache_max_size: int = field(
        default_factory=lambda: int(os.environ.get("CACHE_MAX_SIZE", "500"))
    )
    identity_cache_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("IDENTITY_CACHE_TTL_HOURS", "48"))
    )
    identity_cache_max_size: int = field(
        default_factory=lambda: int(os.environ.get("IDENTITY_CACHE_MAX_SIZE", "1000"))
    )
    cache_sweep_interval_s: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_SWEEP_INTERVAL_S", "3600"))
    )
    fetch_cache_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_CACHE_TTL_HOURS", "24"))
    )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    ingest_freshness_hours: float = field(
        default_factory=lambda: float(os.environ.get("INGEST_FRESHNESS_HOURS", "24"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )
    log_json: bool = field(
        default_factory=lambda: _env_bool("LOG_JSON", "false")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level instance; import this where no explicit value is injected:
#   from orbit_crawler.config import settings
settings = Settings()
