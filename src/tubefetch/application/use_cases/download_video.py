from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from tubefetch.domain.entities.media import QueuedDownload
from tubefetch.domain.exceptions import StreamNotFoundError, VideoNotFoundError
from tubefetch.domain.ports import DownloaderPort, ProgressSink, VideoCachePort

log = structlog.get_logger(__name__)


class DownloadVideoUseCase:
    def __init__(self, *, cache: VideoCachePort, downloader: DownloaderPort) -> None:
        self._cache = cache
        self._downloader = downloader

    def plan(self, video_id: str, itag: int) -> QueuedDownload:
        video = self._cache.get_video(video_id)
        if video is None:
            raise VideoNotFoundError(f"video {video_id!r} has not been resolved")
        stream = video.find_stream(itag)
        if stream is None:
            raise StreamNotFoundError(f"video {video_id!r} has no stream with itag {itag}")
        return QueuedDownload(video=video, selected=stream)

    async def execute(
        self,
        video_id: str,
        itag: int,
        output_dir: Path,
        *,
        progress: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Path:
        queued = self.plan(video_id, itag)
        destination = output_dir / queued.video.filename_for(queued.selected)
        streams = queued.streams()
        log.debug(
            "download_planned",
            video_id=video_id,
            itags=[s.itag for s in streams],
            destination=str(destination),
        )
        return await self._downloader.download(
            streams, destination, progress=progress, cancel=cancel
        )
