from __future__ import annotations

import structlog

from tubefetch.domain.entities.media import VideoDescriptor
from tubefetch.domain.ports import PageResolverPort, VideoCachePort

log = structlog.get_logger(__name__)


class ResolveVideoUseCase:
    """Resolve a page URL and register the result in the video cache.

    Returns the cached descriptor, which is the earlier one when the same
    video was already resolved.
    """

    def __init__(self, *, resolver: PageResolverPort, cache: VideoCachePort) -> None:
        self._resolver = resolver
        self._cache = cache

    async def execute(self, url: str) -> VideoDescriptor:
        video = await self._resolver.resolve(url)
        self._cache.add_video(video)
        cached = self._cache.get_video(video.video_id)
        return cached if cached is not None else video
