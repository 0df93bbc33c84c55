"""Static catalog of known stream identifiers (itags).

Only streams whose itag is listed here are resolved; the page may offer
more (AV1, HDR, ...), those are reported as unsupported.
"""

from __future__ import annotations

from dataclasses import replace
from types import MappingProxyType
from typing import Mapping

from tubefetch.domain.entities.media import ACodec, FormatDetails, VCodec

_H264 = VCodec.H264
_VP8 = VCodec.VP8
_VP9 = VCodec.VP9
_AAC = ACodec.AAC
_VORBIS = ACodec.VORBIS
_OPUS = ACodec.OPUS

_FORMATS: dict[int, FormatDetails] = {
    # Video with audio
    18: FormatDetails("mp4", video_quality=360, audio_bitrate=96, vcodec=_H264, acodec=_AAC),
    22: FormatDetails("mp4", video_quality=720, audio_bitrate=192, vcodec=_H264, acodec=_AAC),
    37: FormatDetails("mp4", video_quality=1080, audio_bitrate=192, vcodec=_H264, acodec=_AAC),
    46: FormatDetails("webm", video_quality=1080, audio_bitrate=192, vcodec=_VP8, acodec=_VORBIS),
    # DASH mp4 video (298/299 are the 720p60/1080p60 H.264 renditions)
    160: FormatDetails("mp4", video_quality=144, vcodec=_H264),
    133: FormatDetails("mp4", video_quality=240, vcodec=_H264),
    134: FormatDetails("mp4", video_quality=360, vcodec=_H264),
    135: FormatDetails("mp4", video_quality=480, vcodec=_H264),
    136: FormatDetails("mp4", video_quality=720, vcodec=_H264),
    137: FormatDetails("mp4", video_quality=1080, vcodec=_H264),
    264: FormatDetails("mp4", video_quality=1440, vcodec=_H264),
    266: FormatDetails("mp4", video_quality=2160, vcodec=_H264),
    298: FormatDetails("mp4", video_quality=720, vcodec=_H264, fps=60),
    299: FormatDetails("mp4", video_quality=1080, vcodec=_H264, fps=60),
    # DASH mp4 audio
    139: FormatDetails("m4a", audio_bitrate=48, acodec=_AAC),
    140: FormatDetails("m4a", audio_bitrate=128, acodec=_AAC),
    141: FormatDetails("m4a", audio_bitrate=256, acodec=_AAC),
    256: FormatDetails("m4a", audio_bitrate=192, acodec=_AAC),
    258: FormatDetails("m4a", audio_bitrate=384, acodec=_AAC),
    # DASH webm audio
    171: FormatDetails("webm", audio_bitrate=128, acodec=_VORBIS),
    172: FormatDetails("webm", audio_bitrate=256, acodec=_VORBIS),
    249: FormatDetails("webm", audio_bitrate=50, acodec=_OPUS),
    250: FormatDetails("webm", audio_bitrate=70, acodec=_OPUS),
    251: FormatDetails("webm", audio_bitrate=160, acodec=_OPUS),
    # DASH webm video
    278: FormatDetails("webm", video_quality=144, vcodec=_VP9),
    242: FormatDetails("webm", video_quality=240, vcodec=_VP9),
    243: FormatDetails("webm", video_quality=360, vcodec=_VP9),
    244: FormatDetails("webm", video_quality=480, vcodec=_VP9),
    245: FormatDetails("webm", video_quality=480, vcodec=_VP9),
    246: FormatDetails("webm", video_quality=480, vcodec=_VP9),
    247: FormatDetails("webm", video_quality=720, vcodec=_VP9),
    248: FormatDetails("webm", video_quality=1080, vcodec=_VP9),
    271: FormatDetails("webm", video_quality=1440, vcodec=_VP9),
    272: FormatDetails("webm", video_quality=2160, vcodec=_VP9),
    302: FormatDetails("webm", video_quality=720, vcodec=_VP9, fps=60),
    303: FormatDetails("webm", video_quality=1080, vcodec=_VP9, fps=60),
    308: FormatDetails("webm", video_quality=1440, vcodec=_VP9, fps=60),
    313: FormatDetails("webm", video_quality=2160, vcodec=_VP9),
    315: FormatDetails("webm", video_quality=2160, vcodec=_VP9, fps=60),
}

FORMAT_CATALOG: Mapping[int, FormatDetails] = MappingProxyType(
    {itag: replace(details, itag=itag) for itag, details in _FORMATS.items()}
)


def lookup(itag: int) -> FormatDetails | None:
    """Return the catalog entry for *itag* (carrying the itag), or ``None``."""
    return FORMAT_CATALOG.get(itag)


def is_supported(itag: int) -> bool:
    return itag in FORMAT_CATALOG
