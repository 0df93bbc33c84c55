"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/103.0.5060.134 Safari/537.36"
)

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "tubefetch",
    "environment": "dev",
    "http": {
        "timeout_seconds": 30.0,
        "follow_redirects": True,
        "user_agent": DEFAULT_USER_AGENT,
        "chunk_size": 64 * 1024,
    },
    "resolver": {
        "payload_ignore_unknown_fields": True,
        "decoder_cache_size": 16,
    },
    "download": {
        "temp_dir": None,  # None = system temp directory
        "ffmpeg_path": "ffmpeg",
        "ffmpeg_extra_args": [],
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
}
