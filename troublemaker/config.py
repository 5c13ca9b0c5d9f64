"""
Troublemaker Configuration.

Pydantic Settings v2. Sources, highest priority first:
    1. command line flags (passed in as init kwargs by the CLI)
    2. environment variables, no prefix: flag "exit.after" -> EXIT_AFTER
    3. plain config file named by the "config" flag or CONFIG env var,
       one "flag.name value" pair per line, "#" starts a comment
    4. defaults below

Settings are frozen once loaded.
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Tuple, Type

from pydantic import Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from troublemaker.durations import MILLISECOND, coerce_duration, format_duration
from troublemaker.exceptions import ConfigurationError

MAX_SEED = 2**64 - 1

_DURATION_FIELDS = (
    "web_delay",
    "web_delay_jitter",
    "exit_after",
    "exit_after_jitter",
    "cpuload_cycle",
)


def flag_to_field(name: str) -> str:
    """Map a flag name ("web.delay.jitter") to its settings field ("web_delay_jitter")."""
    return name.strip().lstrip("-").replace(".", "_").replace("-", "_").lower()


def read_plain_config(path: Path) -> Dict[str, str]:
    """
    Read a plain config file.

    Each non-blank line is "name value"; the value is everything after the
    first run of whitespace. A line holding only a name means "true".
    """
    values: Dict[str, str] = {}
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(
            f"could not read config file {path}", config_key="config", cause=exc,
        ) from exc

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        name, *rest = line.split(None, 1)
        value = rest[0].strip() if rest else ""
        if "#" in value:
            value = value.split("#", 1)[0].strip()
        values[flag_to_field(name)] = value or "true"
    return values


class PlainConfigFileSource(PydanticBaseSettingsSource):
    """Settings source backed by the plain config file, if one is named."""

    def __init__(self, settings_cls: Type[BaseSettings], init_kwargs: Dict[str, Any]):
        super().__init__(settings_cls)
        self._init_kwargs = init_kwargs

    def _config_path(self) -> Optional[Path]:
        path = self._init_kwargs.get("config") or os.environ.get("CONFIG") or os.environ.get("config")
        return Path(path) if path else None

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        # Values are produced wholesale in __call__.
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        path = self._config_path()
        if path is None:
            return {}
        values = read_plain_config(path)
        known = self.settings_cls.model_fields
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ConfigurationError(
                f"unknown keys in config file {path}: {', '.join(unknown)}",
                config_key=unknown[0],
            )
        return values


class Settings(BaseSettings):
    """Run configuration, one field per flag."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── Config file ───────────────────────────────────────────────────────
    config: Optional[str] = Field(default=None, description="path to a plain config file")

    # ── Web ───────────────────────────────────────────────────────────────
    web_enable: bool = Field(default=True, description="enable http server")
    web_listen: str = Field(default="0.0.0.0:8092", description="http server bind addr")
    web_delay: int = Field(default=0, ge=0, description="sleep duration before starting http server")
    web_delay_jitter: int = Field(default=0, ge=0, description="delay +/- jitter")

    # ── Exit ──────────────────────────────────────────────────────────────
    exit_after: int = Field(
        default=0,
        ge=0,
        description="exit with exit code if duration > 0, 1ns=exit asap",
    )
    exit_after_jitter: int = Field(default=0, ge=0, description="exit after +/- jitter")
    exit_percent: int = Field(
        default=100,
        ge=0,
        le=100,
        description="% chance to exit if exit.after is set",
    )
    exit_code: int = Field(default=1, ge=0, le=255, description="exit code when exiting")

    # ── Signals ───────────────────────────────────────────────────────────
    signals_ignore: bool = Field(default=False, description="ignore shutdown signals")

    # ── CPU load ──────────────────────────────────────────────────────────
    cpuload_enable: bool = Field(default=False, description="run the cpu load phase script")
    cpuload_workers: int = Field(
        default=1,
        description="cpu load worker processes, clamped to [1, available cpus]",
    )
    cpuload_cycle: int = Field(
        default=100 * MILLISECOND,
        gt=0,
        description="duty cycle length of the cpu load workers",
    )

    # ── Randomness ────────────────────────────────────────────────────────
    rand_seed1: Optional[int] = Field(
        default=None, ge=0, le=MAX_SEED, description="seed1 for random generator",
    )
    rand_seed2: Optional[int] = Field(
        default=None, ge=0, le=MAX_SEED, description="seed2 for random generator",
    )

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="log level")
    log_format: Literal["console", "json"] = Field(
        default="console", description="log renderer: console or json",
    )

    @field_validator(*_DURATION_FIELDS, mode="before")
    @classmethod
    def parse_durations(cls, v: Any) -> int:
        """Accept duration strings ("1m30s") as well as plain nanoseconds."""
        return coerce_duration(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            PlainConfigFileSource(settings_cls, getattr(init_settings, "init_kwargs", {})),
        )

    @property
    def seeded(self) -> bool:
        """Both random seeds are known."""
        return self.rand_seed1 is not None and self.rand_seed2 is not None

    def with_seeds(self, seed_provider: Callable[[], int]) -> "Settings":
        """Return a copy with unset seeds drawn from ``seed_provider``."""
        if self.seeded:
            return self
        return self.model_copy(update={
            "rand_seed1": self.rand_seed1 if self.rand_seed1 is not None else seed_provider(),
            "rand_seed2": self.rand_seed2 if self.rand_seed2 is not None else seed_provider(),
        })

    def log_dict(self) -> Dict[str, Any]:
        """Flag values as logged at startup, durations in their string form."""
        data = self.model_dump()
        for name in _DURATION_FIELDS:
            data[name] = format_duration(data[name])
        return data


def load_settings(**flags: Any) -> Settings:
    """
    Load settings, with explicitly given command line flags taking priority.

    Raises:
        ConfigurationError: any source holds an invalid value.
    """
    try:
        return Settings(**flags)
    except ValidationError as exc:
        raise ConfigurationError(str(exc), cause=exc) from exc
