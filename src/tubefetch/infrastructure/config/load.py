from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

# Flat (env/CLI) key -> (section, key) in the sectioned YAML shape.
_FLAT_KEYS: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_follow_redirects": ("http", "follow_redirects"),
    "http_user_agent": ("http", "user_agent"),
    "http_chunk_size": ("http", "chunk_size"),
    "payload_ignore_unknown_fields": ("resolver", "payload_ignore_unknown_fields"),
    "decoder_cache_size": ("resolver", "decoder_cache_size"),
    "temp_dir": ("download", "temp_dir"),
    "ffmpeg_path": ("download", "ffmpeg_path"),
    "ffmpeg_extra_args": ("download", "ffmpeg_extra_args"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
}
_SECTIONS = frozenset(section for section, _ in _FLAT_KEYS.values())
_TOP_LEVEL_KEYS = ("app_name", "environment")


def _merge_into(base: dict[str, Any], layer: Mapping[str, Any]) -> None:
    """Overlay a sectioned *layer* onto *base*; sections merge key by key."""
    for key, value in layer.items():
        if key in _SECTIONS and isinstance(value, Mapping):
            base.setdefault(key, {}).update(value)
        else:
            base[key] = value


def _sectioned(data: Mapping[str, Any]) -> dict[str, Any]:
    """Bring a layer that may mix flat and sectioned keys into sectioned shape.

    Unknown keys are dropped; flat keys win over the same key given inside
    a section of the same layer.
    """
    out: dict[str, Any] = {k: data[k] for k in _TOP_LEVEL_KEYS if k in data}
    for section in _SECTIONS:
        block = data.get(section)
        if isinstance(block, Mapping):
            out[section] = dict(block)
    for flat_key, (section, key) in _FLAT_KEYS.items():
        if flat_key in data:
            out.setdefault(section, {})[key] = data[flat_key]
    return out


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(config_path)
    parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars (TUBEFETCH_*, .env) < cli overrides

    Never creates files or directories.
    """
    # .env feeds the env layer; variables already set in the process win.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    layers: list[Mapping[str, Any]] = [deepcopy(DEFAULT_CONFIG)]
    if config_path is not None:
        layers.append(_read_yaml(config_path))
    layers.append(EnvOverrides().to_update_dict())
    layers.append(cli_overrides or {})

    merged: dict[str, Any] = {}
    for layer in layers:
        _merge_into(merged, _sectioned(layer))
    return AppConfig.model_validate(merged)
