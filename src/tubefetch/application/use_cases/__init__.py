from .download_video import DownloadVideoUseCase
from .resolve_video import ResolveVideoUseCase

__all__ = ["DownloadVideoUseCase", "ResolveVideoUseCase"]
