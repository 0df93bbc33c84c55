from .media import (
    ACodec,
    DecoderFunction,
    DecoderKind,
    DownloadProgress,
    FormatDetails,
    QueuedDownload,
    ResolvedStream,
    VCodec,
    VideoDescriptor,
)

__all__ = [
    "ACodec",
    "DecoderFunction",
    "DecoderKind",
    "DownloadProgress",
    "FormatDetails",
    "QueuedDownload",
    "ResolvedStream",
    "VCodec",
    "VideoDescriptor",
]
