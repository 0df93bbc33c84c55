"""Domain entities for resolved videos and their media streams.

Pure value objects: no framework dependencies and no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


class VCodec(str, Enum):
    NONE = "none"
    H264 = "h264"
    VP8 = "vp8"
    VP9 = "vp9"


class ACodec(str, Enum):
    NONE = "none"
    AAC = "aac"
    VORBIS = "vorbis"
    OPUS = "opus"


class DecoderKind(str, Enum):
    """Which obfuscated URL parameter a decoder handles."""

    SIGNATURE = "signature"
    N_SIGNATURE = "n_signature"


@dataclass(frozen=True)
class FormatDetails:
    """Codec/quality metadata for one stream identifier (itag)."""

    container: str  # "mp4", "m4a", "webm"
    video_quality: int | None = None  # vertical pixels, e.g. 1080
    audio_bitrate: int | None = None  # kbps
    vcodec: VCodec = VCodec.NONE
    acodec: ACodec = ACodec.NONE
    fps: int | None = None
    itag: int = 0

    @property
    def has_video(self) -> bool:
        return self.vcodec is not VCodec.NONE

    @property
    def has_audio(self) -> bool:
        return self.acodec is not ACodec.NONE

    @property
    def is_video_only(self) -> bool:
        return self.has_video and not self.has_audio

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def label(self) -> str:
        """Short human-readable description, e.g. ``1080p60 vp9 webm``."""
        if self.has_video:
            fps = str(self.fps) if self.fps else ""
            text = f"{self.video_quality}p{fps} {self.vcodec.value}"
            if self.has_audio:
                text += f"+{self.acodec.value}"
        else:
            text = f"{self.audio_bitrate}k {self.acodec.value}"
        return f"{text} {self.container}"


@dataclass(frozen=True)
class ResolvedStream:
    """A stream whose URL is directly fetchable (signature already applied)."""

    url: str
    details: FormatDetails
    content_length: int = 0  # 0 = not declared by the page

    @property
    def itag(self) -> int:
        return self.details.itag


@dataclass(frozen=True, eq=False)
class VideoDescriptor:
    """Page-level metadata plus every resolved stream of one video.

    Identity is the stable ``video_id``: two descriptors with the same id
    are the same video.
    """

    video_id: str
    title: str
    streams: tuple[ResolvedStream, ...] = ()
    unsupported_itags: tuple[int, ...] = ()  # offered by the page, not in catalog

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VideoDescriptor):
            return NotImplemented
        return self.video_id == other.video_id

    def __hash__(self) -> int:
        return hash(self.video_id)

    def find_stream(self, itag: int) -> ResolvedStream | None:
        for stream in self.streams:
            if stream.itag == itag:
                return stream
        return None

    def best_audio_for(self, stream: ResolvedStream) -> ResolvedStream | None:
        """Highest-bitrate audio-only stream that can be muxed with *stream*.

        WebM video pairs with WebM audio; everything else pairs with M4A.
        """
        wanted = "webm" if stream.details.container == "webm" else "m4a"
        candidates = [
            s
            for s in self.streams
            if s.details.is_audio_only
            and s.details.container == wanted
            and s.details.audio_bitrate is not None
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.details.audio_bitrate or 0)

    def filename_for(self, stream: ResolvedStream) -> str:
        stem = _UNSAFE_FILENAME_CHARS.sub("_", self.title).strip(" .") or self.video_id
        return f"{stem}.{stream.details.container}"


@dataclass(frozen=True)
class QueuedDownload:
    """A caller-selected stream handed to the download pipeline."""

    video: VideoDescriptor
    selected: ResolvedStream

    def streams(self) -> tuple[ResolvedStream, ...]:
        """The one or two streams that must be fetched.

        A video-only selection is paired with the best matching audio
        stream; anything carrying audio is fetched on its own.
        """
        if not self.selected.details.is_video_only:
            return (self.selected,)
        audio = self.video.best_audio_for(self.selected)
        if audio is None:
            return (self.selected,)
        return (self.selected, audio)


@dataclass(frozen=True)
class DecoderFunction:
    """Self-contained script fragment plus the name of its entry point.

    Built once per player-script version and cached by
    ``(script_version, kind)``; a pure function of the script's content.
    """

    script: str
    entry_point: str
    kind: DecoderKind = field(default=DecoderKind.SIGNATURE)


@dataclass(frozen=True)
class DownloadProgress:
    """Cumulative bytes received across every transfer of one download."""

    downloaded: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.downloaded / self.total)
