"""Configuration management for the plots service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger("plots.config")

DEFAULT_JWT_SECRET = "fallback-secret"
ENV_PREFIX = "PLOTS_"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _split_origins(value: str) -> Tuple[str, ...]:
    origins = tuple(item.strip() for item in value.split(",") if item.strip())
    return origins or ("*",)


def default_database_path() -> Path:
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "plots.sqlite3").resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime options, read from the environment and an optional YAML file."""

    database_url: Optional[str] = None
    db_host: Optional[str] = None
    db_port: int = 5432
    db_name: str = "plots_db"
    db_user: str = "plots_user"
    db_password: str = "plots_password"
    db_path: Path = default_database_path()
    db_pool_size: int = 20
    db_pool_timeout: int = 10
    host: str = "0.0.0.0"
    port: int = 3000
    jwt_secret: str = DEFAULT_JWT_SECRET
    environment: str = "production"
    admin_username: str = "admin"
    admin_email: str = "admin@plots.com"
    admin_password: str = "admin123"
    cors_origins: Tuple[str, ...] = ("*",)
    seed: bool = True

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"development", "dev"}

    @staticmethod
    def from_dict(data: Mapping[str, object], base: Optional["Settings"] = None) -> "Settings":
        """Overlay raw key/value data (YAML or environment) on ``base``."""
        settings = base or Settings()
        known = {item.name for item in fields(Settings)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        updates: Dict[str, object] = {}
        for key, raw in data.items():
            if raw is None:
                continue
            text = str(raw)
            if key in {"db_port", "db_pool_size", "db_pool_timeout", "port"}:
                updates[key] = raw if isinstance(raw, int) else _env_int(key, text)
            elif key == "seed":
                updates[key] = raw if isinstance(raw, bool) else _env_flag(text, True)
            elif key == "db_path":
                updates[key] = Path(text).expanduser().resolve(strict=False)
            elif key == "cors_origins":
                if isinstance(raw, (list, tuple)):
                    updates[key] = tuple(str(item) for item in raw) or ("*",)
                else:
                    updates[key] = _split_origins(text)
            else:
                updates[key] = text
        return replace(settings, **updates)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()

        config_path = env.get(f"{ENV_PREFIX}CONFIG")
        if config_path:
            settings = load_settings_file(Path(config_path).expanduser(), base=settings)

        overrides: Dict[str, object] = {}
        for item in fields(cls):
            name = f"{ENV_PREFIX}{item.name.upper()}"
            if name in env:
                overrides[item.name] = env[name]
        # PLOTS_DATABASE_URL is the documented spelling; DATABASE_URL is the common one.
        if "database_url" not in overrides and env.get("DATABASE_URL"):
            overrides["database_url"] = env["DATABASE_URL"]
        if "environment" not in overrides and env.get(f"{ENV_PREFIX}ENV"):
            overrides["environment"] = env[f"{ENV_PREFIX}ENV"]

        try:
            settings = cls.from_dict(overrides, base=settings)
        except ValueError as exc:
            raise ValueError(f"Invalid {ENV_PREFIX}* environment: {exc}") from exc

        if settings.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("PLOTS_JWT_SECRET is not set; tokens are signed with the built-in fallback secret")
        return settings


def load_settings_file(config_path: Path, base: Optional[Settings] = None) -> Settings:
    """Load settings from a YAML mapping of option names to values."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return Settings.from_dict(raw, base=base)


__all__ = ["DEFAULT_JWT_SECRET", "Settings", "default_database_path", "load_settings_file"]
