"""Port for resolving a video page URL into signed stream URLs."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tubefetch.domain.entities.media import VideoDescriptor


@runtime_checkable
class PageResolverPort(Protocol):
    """Resolves a watch-page URL to a descriptor with fetchable streams.

    Raises ``FetchError``, ``ParseError`` or ``DecodeError``; never returns
    a partial stream list.
    """

    async def resolve(self, page_url: str) -> VideoDescriptor: ...
