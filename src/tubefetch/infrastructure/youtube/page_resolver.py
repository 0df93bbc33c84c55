"""Resolve a watch page into signed, directly fetchable stream URLs.

Pipeline per call:
1. fetch the page markup and read the embedded player response,
2. locate and fetch the player script for the page's script version,
3. decode each cataloged stream's signature cipher and ``n`` parameter
   with decoders extracted from that script (cached per version),
4. return a ``VideoDescriptor``. Any per-stream decode failure aborts the
   whole call; no partial stream list is ever returned.
"""

from __future__ import annotations

from functools import partial
from typing import Any
from urllib.parse import unquote, urljoin

import httpx
import structlog

from tubefetch.domain.entities.media import (
    DecoderKind,
    ResolvedStream,
    VideoDescriptor,
)
from tubefetch.domain.exceptions import DecodeError, FetchError, ParseError
from tubefetch.domain.ports.script_evaluator import (
    ScriptEvaluatorFactory,
    ScriptEvaluatorPort,
)

from . import format_catalog
from .decoder_cache import DecoderCache
from .player_response import (
    FormatEntry,
    find_player_response_json,
    parse_player_response,
)
from .script_extractor import extract_decoder, find_player_script_path
from .urls import append_query_param, get_query_param, parse_cipher, replace_query_param

log = structlog.get_logger(__name__)

_N_REJECTED_PREFIX = "enhanced_except_"


class _Session:
    """Per-resolution state: one script, one evaluator, compiled handles."""

    def __init__(
        self,
        *,
        script: str,
        version: str,
        cache: DecoderCache,
        evaluator: ScriptEvaluatorPort,
    ) -> None:
        self.script = script
        self.version = version
        self._cache = cache
        self._evaluator = evaluator
        self._compiled: dict[DecoderKind, Any] = {}

    async def decode(self, kind: DecoderKind, value: str) -> str:
        compiled = self._compiled.get(kind)
        if compiled is None:
            decoder = await self._cache.get_or_build(
                self.version, kind, partial(extract_decoder, self.script, kind)
            )
            compiled = await self._evaluator.compile(decoder)
            self._compiled[kind] = compiled
        return await self._evaluator.invoke(compiled, value)


class PageResolver:
    """Turns a watch-page URL into a :class:`VideoDescriptor`.

    ``evaluator_factory`` is called once per :meth:`resolve`; the evaluator
    it returns is closed before the call returns.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        decoder_cache: DecoderCache,
        evaluator_factory: ScriptEvaluatorFactory,
        ignore_unknown_fields: bool = True,
    ) -> None:
        self._http = http_client
        self._cache = decoder_cache
        self._evaluator_factory = evaluator_factory
        self._ignore_unknown_fields = ignore_unknown_fields

    async def _fetch_text(self, url: str, what: str) -> httpx.Response:
        try:
            resp = await self._http.get(url)
        except httpx.HTTPError as e:
            log.warning(f"{what}_fetch_failed", url=url, error=str(e))
            raise FetchError(f"fetching {what} failed: {e}", url=url) from e

        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning(f"{what}_fetch_failed", url=url, status=resp.status_code)
            raise FetchError(
                f"fetching {what} returned HTTP {resp.status_code}",
                url=url,
                status=resp.status_code,
            )
        log.debug(f"{what}_fetched", url=url, size=len(resp.content))
        return resp

    async def resolve(self, page_url: str) -> VideoDescriptor:
        page = await self._fetch_text(page_url, "page")
        markup = page.text

        response = parse_player_response(
            find_player_response_json(markup),
            ignore_unknown_fields=self._ignore_unknown_fields,
        )
        video_id = response.video_details.video_id

        located = find_player_script_path(markup)
        if located is None:
            raise ParseError(f"no player script reference in page of video {video_id}")
        script_path, version = located
        script_url = urljoin(str(page.url), script_path)
        script = (await self._fetch_text(script_url, "player_script")).text

        evaluator = self._evaluator_factory()
        try:
            session = _Session(
                script=script,
                version=version,
                cache=self._cache,
                evaluator=evaluator,
            )
            streams: list[ResolvedStream] = []
            unsupported: list[int] = []
            seen: set[int] = set()
            for entry in response.entries():
                if entry.itag in seen:
                    continue
                seen.add(entry.itag)
                if not format_catalog.is_supported(entry.itag):
                    unsupported.append(entry.itag)
                    continue
                details = format_catalog.FORMAT_CATALOG[entry.itag]
                url = await self._stream_url(entry, session)
                streams.append(
                    ResolvedStream(
                        url=url,
                        details=details,
                        content_length=entry.content_length,
                    )
                )
        finally:
            evaluator.close()

        if unsupported:
            log.debug("unsupported_itags_skipped", video_id=video_id, itags=unsupported)
        log.info(
            "video_resolved",
            video_id=video_id,
            script_version=version,
            streams=len(streams),
            unsupported=len(unsupported),
        )
        return VideoDescriptor(
            video_id=video_id,
            title=response.video_details.title,
            streams=tuple(streams),
            unsupported_itags=tuple(unsupported),
        )

    async def _stream_url(self, entry: FormatEntry, session: _Session) -> str:
        try:
            if entry.url:
                url = unquote(entry.url)
            elif entry.signature_cipher:
                cipher = parse_cipher(entry.signature_cipher, itag=entry.itag)
                signature = await session.decode(DecoderKind.SIGNATURE, cipher.signature)
                url = append_query_param(cipher.url, cipher.param, signature)
            else:
                raise DecodeError("format has neither url nor cipher", itag=entry.itag)

            n_value = get_query_param(url, "n")
            if n_value is not None:
                decoded = await session.decode(DecoderKind.N_SIGNATURE, n_value)
                if decoded == n_value or decoded.startswith(_N_REJECTED_PREFIX):
                    raise DecodeError(
                        f"n decoder rejected value for itag {entry.itag}",
                        itag=entry.itag,
                    )
                try:
                    url = replace_query_param(url, "n", decoded)
                except KeyError as e:
                    raise DecodeError(
                        f"n parameter vanished from url of itag {entry.itag}",
                        itag=entry.itag,
                    ) from e
        except DecodeError as e:
            if e.itag is None:
                e.itag = entry.itag
            log.error(
                "stream_decode_failed",
                itag=entry.itag,
                script_version=session.version,
                error=str(e),
            )
            raise
        return url
