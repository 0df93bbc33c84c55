"""End-to-end resolution against the real script sandbox.

Serves a watch page and player script through respx, then runs the real
extractor and dukpy evaluator behind PageResolver.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest
import respx

from tubefetch.domain.entities.media import DecoderKind
from tubefetch.infrastructure.config.load import load_config
from tubefetch.infrastructure.composition import build_services
from tubefetch.infrastructure.youtube.decoder_cache import DecoderCache
from tubefetch.infrastructure.youtube.page_resolver import PageResolver
from tubefetch.infrastructure.youtube.script_evaluator import DukpyScriptEvaluator

pytestmark = pytest.mark.integration


@respx.mock
@pytest.mark.asyncio()
async def test_decodes_signature_and_n_in_sandbox(
    build_page: Callable[..., str],
    default_payload: dict[str, Any],
    player_js: str,
    page_url: str,
    script_url: str,
) -> None:
    respx.get(page_url).respond(200, text=build_page(default_payload))
    respx.get(script_url).respond(200, text=player_js)
    cache = DecoderCache()

    async with httpx.AsyncClient() as client:
        resolver = PageResolver(
            client, decoder_cache=cache, evaluator_factory=DukpyScriptEvaluator
        )
        video = await resolver.resolve(page_url)

    by_itag = {s.itag: s for s in video.streams}
    assert by_itag[137].url == "https://media.test/v137?n=zyx&k=1&sig=DCBA"
    assert by_itag[18].url == "https://media.test/v18?n=cba&x=1"
    assert cache.peek("abc123ef", DecoderKind.SIGNATURE) is not None
    assert cache.peek("abc123ef", DecoderKind.N_SIGNATURE) is not None


@respx.mock
@pytest.mark.asyncio()
async def test_services_resolve_and_keep_injected_client_open(
    build_page: Callable[..., str],
    default_payload: dict[str, Any],
    player_js: str,
    page_url: str,
    script_url: str,
) -> None:
    respx.get(page_url).respond(200, text=build_page(default_payload))
    respx.get(script_url).respond(200, text=player_js)
    config = load_config(cli_overrides={"environment": "test"})

    async with httpx.AsyncClient() as client:
        async with build_services(config, http_client=client) as services:
            video = await services.resolve_video.execute(page_url)
            again = await services.resolve_video.execute(page_url)

            assert again is video
            assert services.video_cache.get_video("vid123") is video
            assert services.decoder_cache.builds == 2
        assert not client.is_closed
