"""Settings loader for Contentorator."""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)

    media_cfg = t.get("media", {}) or {}
    out: dict[str, Any] = {
        "env": t.get("app", {}).get("env", "dev"),
        "media_slug": media_cfg.get("slug", "plugin::upload.file"),
        "media_root": media_cfg.get("root", "media"),
        "media_fetch_timeout_seconds": float(media_cfg.get("fetch_timeout_seconds", 30.0)),
        "schema_path": (t.get("schema", {}) or {}).get("path", "content-types.json"),
        # Logging config
        "logging_level": t.get("logging", {}).get("level", "INFO"),
        "logging_file_path": t.get("logging", {}).get("file_path", "logs/contentorator.jsonl"),
        "logging_max_bytes": t.get("logging", {}).get("max_bytes", 5_000_000),
        "logging_backup_count": t.get("logging", {}).get("backup_count", 5),
    }

    db_url = (t.get("database", {}) or {}).get("url")
    if db_url:
        out["database_url"] = db_url

    allowed = media_cfg.get("allowed_types")
    if allowed is not None:
        # A single string is accepted as shorthand for a one-item list
        out["media_allowed_types"] = [allowed] if isinstance(allowed, str) else list(allowed)

    log_cfg = t.get("logging", {}) or {}
    overall = str(out["logging_level"]).upper()

    # Per-handler levels: strings INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE, or bools
    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(log_cfg.get("console"), overall)
    out["logging_file"] = _norm_level(log_cfg.get("to_file"), overall)
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./contentorator.sqlite3")

    # --- Content schema ---
    schema_path: str = "content-types.json"

    # --- Media ---
    # Reserved slug whose records are file references rather than entries
    media_slug: str = "plugin::upload.file"
    media_root: str = "media"
    media_allowed_types: list[str] = Field(default_factory=lambda: ["any"])
    media_fetch_timeout_seconds: float = 30.0

    # --- Logging ---
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "INFO"
    logging_file_path: str = "logs/contentorator.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (config.toml)
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
