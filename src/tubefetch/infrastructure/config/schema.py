"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .defaults import DEFAULT_USER_AGENT

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/resolver/download/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="tubefetch", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP transport (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Request timeout in seconds for page, script and media fetches.",
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "http_follow_redirects",
            AliasPath("http", "follow_redirects"),
        ),
        description="Whether the HTTP client follows redirects.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )
    http_chunk_size: int = Field(
        default=64 * 1024,
        validation_alias=AliasChoices(
            "http_chunk_size",
            AliasPath("http", "chunk_size"),
        ),
        description="Read size in bytes for streamed media downloads.",
    )

    # Page resolver (YAML section: resolver.*)
    payload_ignore_unknown_fields: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "payload_ignore_unknown_fields",
            AliasPath("resolver", "payload_ignore_unknown_fields"),
        ),
        description="Tolerate unrecognized fields in the embedded player response.",
    )
    decoder_cache_size: int = Field(
        default=16,
        validation_alias=AliasChoices(
            "decoder_cache_size",
            AliasPath("resolver", "decoder_cache_size"),
        ),
        description="Max cached decoder functions (two per player-script version).",
    )

    # Download + remux (YAML section: download.*)
    temp_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices(
            "temp_dir",
            AliasPath("download", "temp_dir"),
        ),
        description="Directory for temporary stream files. Unset = system temp.",
    )
    ffmpeg_path: str = Field(
        default="ffmpeg",
        validation_alias=AliasChoices(
            "ffmpeg_path",
            AliasPath("download", "ffmpeg_path"),
        ),
        description="Path or name of the ffmpeg executable.",
    )
    ffmpeg_extra_args: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "ffmpeg_extra_args",
            AliasPath("download", "ffmpeg_extra_args"),
        ),
        description="Extra ffmpeg arguments inserted before the output path.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    @field_validator("temp_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return _normalize_path(v)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("http_chunk_size", "decoder_cache_size")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
                "chunk_size": self.http_chunk_size,
            },
            "resolver": {
                "payload_ignore_unknown_fields": self.payload_ignore_unknown_fields,
                "decoder_cache_size": self.decoder_cache_size,
            },
            "download": {
                "temp_dir": str(self.temp_dir) if self.temp_dir else None,
                "ffmpeg_path": self.ffmpeg_path,
                "ffmpeg_extra_args": list(self.ffmpeg_extra_args),
            },
            "logging": {"level": self.log_level, "format": self.log_format},
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read TUBEFETCH_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - TUBEFETCH_HTTP_TIMEOUT_SECONDS
    - TUBEFETCH_HTTP_USER_AGENT
    - TUBEFETCH_FFMPEG_PATH
    - TUBEFETCH_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="TUBEFETCH_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None
    http_chunk_size: Optional[int] = None

    payload_ignore_unknown_fields: Optional[bool] = None
    decoder_cache_size: Optional[int] = None

    temp_dir: Optional[Path] = None
    ffmpeg_path: Optional[str] = None
    ffmpeg_extra_args: Optional[list[str]] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    @field_validator("temp_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
