from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
import structlog

from tubefetch.application.use_cases import DownloadVideoUseCase, ResolveVideoUseCase
from tubefetch.infrastructure.config import AppConfig
from tubefetch.infrastructure.download.muxer import FfmpegMuxer
from tubefetch.infrastructure.download.orchestrator import StreamDownloader
from tubefetch.infrastructure.persistence.video_cache import InMemoryVideoCache
from tubefetch.infrastructure.youtube.decoder_cache import DecoderCache
from tubefetch.infrastructure.youtube.page_resolver import PageResolver
from tubefetch.infrastructure.youtube.script_evaluator import DukpyScriptEvaluator

log = structlog.get_logger(__name__)


@dataclass
class Services:
    """Wired use cases plus the shared resources behind them."""

    http_client: httpx.AsyncClient
    video_cache: InMemoryVideoCache
    decoder_cache: DecoderCache
    resolve_video: ResolveVideoUseCase
    download_video: DownloadVideoUseCase


def build_http_client(config: AppConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=config.http_follow_redirects,
    )


@asynccontextmanager
async def build_services(
    config: AppConfig, *, http_client: httpx.AsyncClient | None = None
) -> AsyncIterator[Services]:
    """Composition root: build every component from *config*.

    Order matters:
        1. HTTP client (page, script and media fetches)
        2. Caches (decoder functions, resolved videos)
        3. Resolver (http client + decoder cache + evaluator factory)
        4. Downloader (http client + muxer)
        5. Use cases

    An injected *http_client* is left open on exit; one built here is closed.
    """
    owns_client = http_client is None
    client = http_client or build_http_client(config)
    log.debug("http_client_initialized", owned=owns_client)

    decoder_cache = DecoderCache(maxsize=config.decoder_cache_size)
    video_cache = InMemoryVideoCache()

    resolver = PageResolver(
        client,
        decoder_cache=decoder_cache,
        evaluator_factory=DukpyScriptEvaluator,
        ignore_unknown_fields=config.payload_ignore_unknown_fields,
    )
    downloader = StreamDownloader(
        client,
        FfmpegMuxer(config.ffmpeg_path, config.ffmpeg_extra_args),
        chunk_size=config.http_chunk_size,
        temp_dir=config.temp_dir,
    )

    services = Services(
        http_client=client,
        video_cache=video_cache,
        decoder_cache=decoder_cache,
        resolve_video=ResolveVideoUseCase(resolver=resolver, cache=video_cache),
        download_video=DownloadVideoUseCase(cache=video_cache, downloader=downloader),
    )
    log.info("services_initialized", decoder_cache_size=config.decoder_cache_size)

    try:
        yield services
    finally:
        if owns_client:
            await client.aclose()
            log.debug("http_client_closed")
