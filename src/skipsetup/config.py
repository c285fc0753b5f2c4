"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Settings live in skipsetup.toml. Environment variables override it using
``__`` as the nested delimiter (e.g. ``INSTALLER__TIMEOUT_S=60``).

Priority (highest wins): init args > env vars > .env > skipsetup.toml

Usage::

    from skipsetup.config import get_settings

    s = get_settings()
    print(s.installer.command)
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_MODULE_NAME_RE = re.compile(r"[a-z][a-z0-9]*(-[a-z0-9]+)*")

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in skipsetup.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class EngineConfig(_StrictModel):
    max_workers: int = 4  # concurrent file writes within one plugin
    io_timeout_s: float = 10.0  # per filesystem call
    manifest_backup: bool = True  # restore the manifest if the install pass fails

    @field_validator("max_workers")
    @classmethod
    def clamp_max_workers(cls, v: int) -> int:
        return max(1, v)

    @field_validator("io_timeout_s")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("io_timeout_s must be positive")
        return v


class InstallerConfig(_StrictModel):
    kind: Literal["node", "python"] = "node"
    command: str = "pnpm"
    timeout_s: float = 300.0  # 5 minutes
    dev: bool = False  # add as dev dependencies


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


class PluginConfig(_StrictModel):
    enabled: bool = True


class ProfileConfig(_StrictModel):
    description: str = ""
    plugins: list[str] = []
    modules: list[str] = []  # stubs written to src/modules/<name>.ts

    @field_validator("modules")
    @classmethod
    def check_module_names(cls, v: list[str]) -> list[str]:
        bad = [m for m in v if not _MODULE_NAME_RE.fullmatch(m)]
        if bad:
            raise ValueError(f"Module names must be lowercase words joined by '-': {bad}")
        return v


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="skipsetup.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = EngineConfig()
    installer: InstallerConfig = InstallerConfig()
    logging: LoggingConfig = LoggingConfig()
    plugins: dict[str, PluginConfig] = {}  # [plugins.<id>]
    profiles: dict[str, ProfileConfig] = {}  # [profiles.<name>]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > skipsetup.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def plugin_enabled(self, plugin_id: str) -> bool:
        cfg = self.plugins.get(plugin_id)
        return cfg is None or cfg.enabled


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
