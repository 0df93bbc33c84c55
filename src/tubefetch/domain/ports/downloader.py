"""Ports for fetching resolved streams and remuxing them."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Protocol, Sequence, runtime_checkable

from tubefetch.domain.entities.media import DownloadProgress, ResolvedStream

ProgressSink = Callable[[DownloadProgress], None]


@runtime_checkable
class DownloaderPort(Protocol):
    async def download(
        self,
        streams: Sequence[ResolvedStream],
        destination: Path,
        *,
        progress: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Path:
        """Fetch one stream, or two streams and remux them, into *destination*."""
        ...


@runtime_checkable
class MuxerPort(Protocol):
    async def mux(
        self,
        video_file: Path,
        audio_file: Path,
        target_format: str,
        destination: Path,
    ) -> Path:
        """Copy both elementary streams into one container at *destination*.

        Raises ``MuxError`` on a nonzero exit status.
        """
        ...
