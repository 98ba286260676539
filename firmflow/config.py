# firmflow/config.py
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

# Per-environment overrides on top of the field defaults. Environment
# variables win over both.
PROFILES: Dict[str, Dict[str, Any]] = {
    "development": {
        "api_base": "http://localhost:4000",
        "enable_dev_mode": True,
        "show_raw_extraction": True,
        "show_debug_info": True,
        "log_level": "debug",
    },
    "staging": {
        "api_base": "https://staging-api.firmflow.in",
        "enable_dev_mode": True,
        "show_raw_extraction": True,
        "show_debug_info": True,
        "log_level": "info",
    },
    "production": {
        "api_base": "https://api.firmflow.in",
        "enable_dev_mode": False,
        "show_raw_extraction": False,
        "show_debug_info": False,
        "log_level": "error",
    },
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FIRMFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = "development"
    api_base: str = "http://localhost:4000"
    log_level: str = "debug"

    enable_dev_mode: bool = True
    show_raw_extraction: bool = True
    show_debug_info: bool = True

    poll_interval_ms: int = 2000
    poll_timeout_ms: int = 300_000
    forwarded_display_ms: int = 3000
    request_timeout_s: float = 30.0

    max_log_entries: int = 200
    storage_namespace: str = "firmflow"
    storage_dir: Path = Path.home() / ".firmflow" / "storage"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        # Profile values arrive as init kwargs and must lose to the environment.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def poll_timeout_s(self) -> float:
        return self.poll_timeout_ms / 1000

    @property
    def forwarded_display_s(self) -> float:
        return self.forwarded_display_ms / 1000


class EnvironmentName(BaseSettings):
    """Reads only ``FIRMFLOW_ENV``, from the same sources as ``Settings``."""

    model_config = Settings.model_config

    env: str = "development"


def get_environment() -> str:
    return EnvironmentName().env or "development"


def profile_for(env: str) -> Dict[str, Any]:
    return dict(PROFILES.get(env, PROFILES["development"]))


def load_settings(env: Optional[str] = None, **overrides) -> Settings:
    """Defaults < environment profile < FIRMFLOW_* variables. ``overrides`` sit with the profile."""
    env = env or get_environment()
    values = profile_for(env)
    values.update(overrides)
    # the chosen name wins over FIRMFLOW_ENV so it always matches the profile
    return Settings(**values).model_copy(update={"env": env})


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def verbose_from_query(params: Mapping[str, Any]) -> bool:
    """``?debug=1`` turns on verbose tracing for the session."""
    value = params.get("debug")
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value == "1"


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
