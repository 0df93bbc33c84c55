"""Port for the caller-owned store of resolved videos."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tubefetch.domain.entities.media import VideoDescriptor


@runtime_checkable
class VideoCachePort(Protocol):
    """Idempotent, concurrency-safe store keyed by ``video_id``.

    The first writer for a key wins; later writes for that key are no-ops.
    """

    def add_video(self, video: VideoDescriptor) -> None: ...

    def get_video(self, video_id: str) -> VideoDescriptor | None: ...
