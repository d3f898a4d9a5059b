"""Configuration loader for gatepass using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (GATEPASS_* with __ for nesting)
  3. settings.local.toml
  4. settings.{env}.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("GATEPASS_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "GATEPASS_ENV"
DEFAULT_ENV = "local"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Playwright launch settings."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_BROWSER__")

    headless: bool = True
    sandbox: bool = False
    launch_timeout_ms: int = 30_000
    extra_args: list[str] = Field(default_factory=list)


class PageSettings(BaseSettings):
    """Request identity applied to every page before navigation."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_PAGE__")

    default_user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080
    headers: dict[str, str] = Field(
        default_factory=lambda: {
            "Accept-Language": "en-US,en;q=0.9",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Encoding": "gzip, deflate, br",
            "Connection": "keep-alive",
        }
    )
    apply_stealth_scripts: bool = True
    ignore_https_errors: bool = True


class GatekeeperSettings(BaseSettings):
    """Resource types aborted while the page loads."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_GATEKEEPER__")

    enabled: bool = True
    blocked_resource_types: list[str] = Field(default_factory=lambda: ["image", "stylesheet", "font", "media"])


class DetectionSettings(BaseSettings):
    """Turnstile detection policy."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_DETECTION__")

    wait_until: str = "networkidle"  # commit | domcontentloaded | load | networkidle
    settle_ms: int = 0
    wait_ms: int = 10_000
    poll_interval_ms: int = 500
    challenge_domain: str = "challenges.cloudflare.com"
    widget_marker: str = "turnstile"
    global_api: str = "turnstile"


class AcquisitionSettings(BaseSettings):
    """Token injection policy."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_ACQUISITION__")

    field_pattern: str = "turnstile|cf[-_]"
    settle_before_ms: int = 0
    settle_after_ms: int = 1_000
    evaluate_timeout_ms: int = 10_000
    fallback_callback: str = "turnstileCallback"


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_API__")

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]
    default_timeout_ms: int = 45_000
    max_concurrent_sessions: int = 4


class LoggingSettings(BaseSettings):
    """Log output configuration."""

    model_config = SettingsConfigDict(env_prefix="GATEPASS_LOGGING__")

    level: str = "INFO"
    json_format: bool = False
    forward_page_console: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root gatepass settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="GATEPASS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    page: PageSettings = Field(default_factory=PageSettings)
    gatekeeper: GatekeeperSettings = Field(default_factory=GatekeeperSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    acquisition: AcquisitionSettings = Field(default_factory=AcquisitionSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _check_detection_window(self) -> "Settings":
        """Reject polling windows that could never complete a probe."""
        if self.detection.poll_interval_ms <= 0:
            raise ValueError("detection.poll_interval_ms must be positive")
        if self.detection.wait_ms < 0:
            raise ValueError("detection.wait_ms must not be negative")
        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
