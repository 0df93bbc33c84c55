"""Shared test fixtures for the tubefetch test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from tubefetch.domain.entities.media import (
    DecoderFunction,
    DecoderKind,
    ResolvedStream,
    VideoDescriptor,
)
from tubefetch.infrastructure.youtube.format_catalog import lookup

# ---------------------------------------------------------------------------
# Synthetic host fixtures
# ---------------------------------------------------------------------------

PLAYER_PATH = "/s/player/abc123ef/player_ias.vflset/en_US/base.js"
PAGE_URL = "https://www.video.test/watch?v=vid123"
SCRIPT_URL = f"https://www.video.test{PLAYER_PATH}"

# Shaped like the real player script: a helper object, the signature
# function calling into it, an array holding the n function's name, the
# n function with a typeof guard, and the call site reading "n".
PLAYER_JS = (
    'var _yt_player={};(function(g){var window=this;'
    "var Xy={ab:function(a,b){a.splice(0,b)},"
    "cd:function(a){a.reverse()},"
    "ef:function(a,b){var c=a[0];a[0]=a[b%a.length];a[b%a.length]=c}};\n"
    'Zq=function(a){a=a.split("");Xy.cd(a,1);return a.join("")};\n'
    "var Kq=[Mn];\n"
    'Mn=function(a){var b=a.split("");'
    'if(typeof Uu==="undefined")return a;'
    'b.reverse();return b.join("")};\n'
    'g.Fx=function(a){var b;if(b=a.get("n"))&&(b=Kq[0](b),a.set("n",b));};\n'
    "})(_yt_player);"
)


def player_response(
    *,
    video_id: str = "vid123",
    title: str = "A: test/video",
    formats: list[dict[str, Any]] | None = None,
    adaptive_formats: list[dict[str, Any]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Minimal player-response payload as the host embeds it."""
    return {
        "videoDetails": {"videoId": video_id, "title": title},
        "streamingData": {
            "formats": formats if formats is not None else [],
            "adaptiveFormats": adaptive_formats if adaptive_formats is not None else [],
        },
        **extra,
    }


def watch_page(payload: dict[str, Any], *, player_path: str | None = PLAYER_PATH) -> str:
    """Watch-page markup embedding *payload* and referencing the player script."""
    script_tag = f'<script src="{player_path}"></script>' if player_path else ""
    return (
        "<html><head>"
        f"{script_tag}"
        '<script>var ytcfg={"lang":"en"};</script>'
        "</head><body>"
        f"<script>var ytInitialPlayerResponse = {json.dumps(payload)};"
        'var meta={"x":"}"};</script>'
        "</body></html>"
    )


@pytest.fixture()
def default_payload() -> dict[str, Any]:
    return player_response(
        formats=[
            {
                "itag": 18,
                "url": "https://media.test/v18?n=abc&x=1",
                "contentLength": "100",
            }
        ],
        adaptive_formats=[
            {
                "itag": 137,
                "signatureCipher": (
                    "url=https%3A%2F%2Fmedia.test%2Fv137%3Fn%3Dxyz%26k%3D1"
                    "&sp=sig&s=ABCD"
                ),
                "contentLength": "2000",
            },
            {
                "itag": 140,
                "url": "https://media.test/a140?k=2",
                "contentLength": "500",
            },
            {"itag": 399, "url": "https://media.test/av1"},
        ],
    )


# ---------------------------------------------------------------------------
# Evaluator / muxer fakes
# ---------------------------------------------------------------------------


class FakeEvaluator:
    """Stands in for the script sandbox; runs a Python callable per kind."""

    def __init__(self, functions: dict[DecoderKind, Callable[[str], str]]) -> None:
        self._functions = functions
        self.compiled: list[DecoderFunction] = []
        self.calls: list[tuple[DecoderKind, str]] = []
        self.closed = False

    async def compile(self, decoder: DecoderFunction) -> DecoderFunction:
        self.compiled.append(decoder)
        return decoder

    async def invoke(self, compiled: DecoderFunction, arg: str) -> str:
        self.calls.append((compiled.kind, arg))
        return self._functions[compiled.kind](arg)

    def close(self) -> None:
        self.closed = True


def _reverse(value: str) -> str:
    return value[::-1]


@pytest.fixture()
def evaluators() -> list[FakeEvaluator]:
    """Every evaluator handed out by ``evaluator_factory``."""
    return []


@pytest.fixture()
def make_evaluator_factory(
    evaluators: list[FakeEvaluator],
) -> Callable[..., Callable[[], FakeEvaluator]]:
    """Build an evaluator factory whose decoders run the given callables."""

    def make(
        signature: Callable[[str], str] = _reverse,
        n: Callable[[str], str] = _reverse,
    ) -> Callable[[], FakeEvaluator]:
        def factory() -> FakeEvaluator:
            evaluator = FakeEvaluator(
                {DecoderKind.SIGNATURE: signature, DecoderKind.N_SIGNATURE: n}
            )
            evaluators.append(evaluator)
            return evaluator

        return factory

    return make


@pytest.fixture()
def evaluator_factory(
    make_evaluator_factory: Callable[..., Callable[[], FakeEvaluator]],
) -> Callable[[], FakeEvaluator]:
    return make_evaluator_factory()


class FakeMuxer:
    """Records mux calls and writes the concatenated inputs to the destination."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, Path, str, Path]] = []
        self.inputs: list[tuple[bytes, bytes]] = []

    async def mux(
        self, video_file: Path, audio_file: Path, target_format: str, destination: Path
    ) -> Path:
        self.calls.append((video_file, audio_file, target_format, destination))
        video, audio = video_file.read_bytes(), audio_file.read_bytes()
        self.inputs.append((video, audio))
        destination.write_bytes(video + audio)
        return destination


@pytest.fixture()
def fake_muxer() -> FakeMuxer:
    return FakeMuxer()


# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


def stream(itag: int, *, url: str | None = None, content_length: int = 0) -> ResolvedStream:
    details = lookup(itag)
    assert details is not None, f"itag {itag} not in catalog"
    return ResolvedStream(
        url=url or f"https://media.test/{itag}",
        details=details,
        content_length=content_length,
    )


@pytest.fixture()
def video() -> VideoDescriptor:
    """Descriptor with combined, mp4/webm video-only and m4a/webm audio streams."""
    return VideoDescriptor(
        video_id="vid123",
        title='My "Video": part 1/2',
        streams=(
            stream(18, content_length=100),
            stream(137, content_length=2000),
            stream(248, content_length=1800),
            stream(139, content_length=50),
            stream(140, content_length=500),
            stream(251, content_length=400),
            stream(250, content_length=300),
        ),
    )


@pytest.fixture()
def make_stream() -> Callable[..., ResolvedStream]:
    return stream


# ---------------------------------------------------------------------------
# Host fixture accessors
# ---------------------------------------------------------------------------


@pytest.fixture()
def player_js() -> str:
    return PLAYER_JS


@pytest.fixture()
def build_payload() -> Callable[..., dict[str, Any]]:
    return player_response


@pytest.fixture()
def build_page() -> Callable[..., str]:
    return watch_page


@pytest.fixture()
def page_url() -> str:
    return PAGE_URL


@pytest.fixture()
def script_url() -> str:
    return SCRIPT_URL
