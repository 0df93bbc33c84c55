"""Process-local store of resolved videos keyed by video id."""

from __future__ import annotations

import threading

import structlog

from tubefetch.domain.entities.media import VideoDescriptor

log = structlog.get_logger(__name__)


class InMemoryVideoCache:
    """Thread-safe, first-writer-wins map of ``video_id`` to descriptor."""

    def __init__(self) -> None:
        self._videos: dict[str, VideoDescriptor] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._videos)

    def add_video(self, video: VideoDescriptor) -> None:
        with self._lock:
            if video.video_id in self._videos:
                return
            self._videos[video.video_id] = video
        log.debug("video_cached", video_id=video.video_id, streams=len(video.streams))

    def get_video(self, video_id: str) -> VideoDescriptor | None:
        with self._lock:
            return self._videos.get(video_id)
