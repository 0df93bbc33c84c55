from .downloader import DownloaderPort, MuxerPort, ProgressSink
from .page_resolver import PageResolverPort
from .script_evaluator import ScriptEvaluatorFactory, ScriptEvaluatorPort
from .video_cache import VideoCachePort

__all__ = [
    "DownloaderPort",
    "MuxerPort",
    "PageResolverPort",
    "ProgressSink",
    "ScriptEvaluatorFactory",
    "ScriptEvaluatorPort",
    "VideoCachePort",
]
