"""Tests for PageResolver."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest
import respx

from tubefetch.domain.entities.media import DecoderKind
from tubefetch.domain.exceptions import DecodeError, FetchError, ParseError
from tubefetch.domain.ports import PageResolverPort
from tubefetch.infrastructure.youtube.decoder_cache import DecoderCache
from tubefetch.infrastructure.youtube.page_resolver import PageResolver


def _resolver(
    client: httpx.AsyncClient,
    evaluator_factory: Callable[[], Any],
    cache: DecoderCache | None = None,
    **kwargs: Any,
) -> PageResolver:
    return PageResolver(
        client,
        decoder_cache=cache if cache is not None else DecoderCache(),
        evaluator_factory=evaluator_factory,
        **kwargs,
    )


class TestPageResolver:
    def test_satisfies_port(self, evaluator_factory: Callable[[], Any]) -> None:
        assert isinstance(
            _resolver(httpx.AsyncClient(), evaluator_factory), PageResolverPort
        )

    @respx.mock
    @pytest.mark.asyncio()
    async def test_resolves_streams(
        self,
        evaluator_factory: Callable[[], Any],
        evaluators: list[Any],
        build_page: Callable[..., str],
        default_payload: dict[str, Any],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        respx.get(page_url).respond(200, text=build_page(default_payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            video = await _resolver(client, evaluator_factory).resolve(page_url)

        assert video.video_id == "vid123"
        assert video.title == "A: test/video"
        assert [s.itag for s in video.streams] == [137, 140, 18]
        assert video.unsupported_itags == (399,)

        by_itag = {s.itag: s for s in video.streams}
        assert by_itag[137].url == "https://media.test/v137?n=zyx&k=1&sig=DCBA"
        assert by_itag[137].content_length == 2000
        assert by_itag[140].url == "https://media.test/a140?k=2"
        assert by_itag[18].url == "https://media.test/v18?n=cba&x=1"
        assert by_itag[18].details.has_audio

        assert len(evaluators) == 1
        assert evaluators[0].closed
        assert [d.entry_point for d in evaluators[0].compiled] == ["Zq", "Mn"]

    @respx.mock
    @pytest.mark.asyncio()
    async def test_decoders_built_once_per_script_version(
        self,
        evaluator_factory: Callable[[], Any],
        evaluators: list[Any],
        build_page: Callable[..., str],
        default_payload: dict[str, Any],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        other_page = "https://www.video.test/watch?v=other"
        other_path = "/s/player/ffee0011/player_ias.vflset/en_US/base.js"
        respx.get(page_url).respond(200, text=build_page(default_payload))
        respx.get(other_page).respond(
            200, text=build_page(default_payload, player_path=other_path)
        )
        respx.get(script_url).respond(200, text=player_js)
        respx.get(f"https://www.video.test{other_path}").respond(200, text=player_js)

        cache = DecoderCache()
        async with httpx.AsyncClient() as client:
            resolver = _resolver(client, evaluator_factory, cache)
            await resolver.resolve(page_url)
            await resolver.resolve(page_url)
            assert cache.builds == 2

            await resolver.resolve(other_page)

        assert cache.builds == 4
        assert cache.peek("abc123ef", DecoderKind.SIGNATURE) is not None
        assert cache.peek("ffee0011", DecoderKind.N_SIGNATURE) is not None
        assert len(evaluators) == 3
        assert all(e.closed for e in evaluators)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_page_http_error(
        self, evaluator_factory: Callable[[], Any], page_url: str
    ) -> None:
        respx.get(page_url).respond(404)

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchError) as exc:
                await _resolver(client, evaluator_factory).resolve(page_url)
        assert exc.value.status == 404
        assert exc.value.url == page_url

    @respx.mock
    @pytest.mark.asyncio()
    async def test_transport_error(
        self, evaluator_factory: Callable[[], Any], page_url: str
    ) -> None:
        respx.get(page_url).mock(side_effect=httpx.ConnectError("refused"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchError) as exc:
                await _resolver(client, evaluator_factory).resolve(page_url)
        assert exc.value.status is None

    @respx.mock
    @pytest.mark.asyncio()
    async def test_script_http_error(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        default_payload: dict[str, Any],
        page_url: str,
        script_url: str,
    ) -> None:
        respx.get(page_url).respond(200, text=build_page(default_payload))
        respx.get(script_url).respond(503)

        async with httpx.AsyncClient() as client:
            with pytest.raises(FetchError) as exc:
                await _resolver(client, evaluator_factory).resolve(page_url)
        assert exc.value.url == script_url

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_payload(
        self, evaluator_factory: Callable[[], Any], page_url: str
    ) -> None:
        respx.get(page_url).respond(200, text="<html><body>nothing</body></html>")

        async with httpx.AsyncClient() as client:
            with pytest.raises(ParseError):
                await _resolver(client, evaluator_factory).resolve(page_url)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_player_script_reference(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        default_payload: dict[str, Any],
        page_url: str,
    ) -> None:
        respx.get(page_url).respond(
            200, text=build_page(default_payload, player_path=None)
        )

        async with httpx.AsyncClient() as client:
            with pytest.raises(ParseError, match="player script"):
                await _resolver(client, evaluator_factory).resolve(page_url)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_strict_payload_rejects_unknown_fields(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        page_url: str,
    ) -> None:
        payload = build_payload(responseContext={"x": 1})
        respx.get(page_url).respond(200, text=build_page(payload))

        async with httpx.AsyncClient() as client:
            resolver = _resolver(client, evaluator_factory, ignore_unknown_fields=False)
            with pytest.raises(ParseError, match="responseContext"):
                await resolver.resolve(page_url)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_unchanged_n_value_aborts_resolution(
        self,
        evaluator_factory: Callable[[], Any],
        evaluators: list[Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        # The reversing fake maps a palindrome onto itself.
        payload = build_payload(
            adaptive_formats=[
                {"itag": 140, "url": "https://media.test/a?k=1"},
                {"itag": 137, "url": "https://media.test/v?n=abba"},
            ]
        )
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            with pytest.raises(DecodeError) as exc:
                await _resolver(client, evaluator_factory).resolve(page_url)
        assert exc.value.itag == 137
        assert evaluators[0].closed

    @respx.mock
    @pytest.mark.asyncio()
    async def test_direct_url_is_percent_decoded(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        payload = build_payload(
            adaptive_formats=[
                {
                    "itag": 140,
                    "url": "https%3A%2F%2Fmedia.test%2Fa%3Fmime%3Daudio%252Fmp4%26k%3D1",
                },
                {"itag": 137, "url": "https://media.test/v?mime=video%2Fmp4&n=xyz"},
            ]
        )
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            video = await _resolver(client, evaluator_factory).resolve(page_url)

        by_itag = {s.itag: s for s in video.streams}
        assert by_itag[140].url == "https://media.test/a?mime=audio%2Fmp4&k=1"
        assert by_itag[137].url == "https://media.test/v?mime=video/mp4&n=zyx"

    @respx.mock
    @pytest.mark.asyncio()
    async def test_bare_n_segment_is_left_alone(
        self,
        evaluator_factory: Callable[[], Any],
        evaluators: list[Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        payload = build_payload(
            adaptive_formats=[{"itag": 140, "url": "https://media.test/a?n&k=1"}]
        )
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            video = await _resolver(client, evaluator_factory).resolve(page_url)

        assert video.streams[0].url == "https://media.test/a?n&k=1"
        assert evaluators[0].calls == []

    @respx.mock
    @pytest.mark.asyncio()
    async def test_rejected_n_prefix_aborts_resolution(
        self,
        make_evaluator_factory: Callable[..., Callable[[], Any]],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        payload = build_payload(
            adaptive_formats=[{"itag": 137, "url": "https://media.test/v?n=abc"}]
        )
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)
        factory = make_evaluator_factory(n=lambda v: f"enhanced_except_{v}")

        async with httpx.AsyncClient() as client:
            with pytest.raises(DecodeError):
                await _resolver(client, factory).resolve(page_url)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_cipher_without_url_aborts_resolution(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        payload = build_payload(
            adaptive_formats=[{"itag": 140, "signatureCipher": "sp=sig&s=ABCD"}]
        )
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            with pytest.raises(DecodeError) as exc:
                await _resolver(client, evaluator_factory).resolve(page_url)
        assert exc.value.itag == 140

    @respx.mock
    @pytest.mark.asyncio()
    async def test_entry_without_url_or_cipher(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        build_payload: Callable[..., dict[str, Any]],
        player_js: str,
        page_url: str,
        script_url: str,
    ) -> None:
        payload = build_payload(adaptive_formats=[{"itag": 140}])
        respx.get(page_url).respond(200, text=build_page(payload))
        respx.get(script_url).respond(200, text=player_js)

        async with httpx.AsyncClient() as client:
            with pytest.raises(DecodeError, match="neither url nor cipher"):
                await _resolver(client, evaluator_factory).resolve(page_url)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_decoder_pattern_aborts_resolution(
        self,
        evaluator_factory: Callable[[], Any],
        build_page: Callable[..., str],
        default_payload: dict[str, Any],
        page_url: str,
        script_url: str,
    ) -> None:
        respx.get(page_url).respond(200, text=build_page(default_payload))
        respx.get(script_url).respond(200, text="var unrelated=1;")

        cache = DecoderCache()
        async with httpx.AsyncClient() as client:
            with pytest.raises(DecodeError):
                await _resolver(client, evaluator_factory, cache).resolve(page_url)
        assert len(cache) == 0
