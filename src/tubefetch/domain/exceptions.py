"""Error taxonomy for resolution and download.

Callers map these kinds to retry/cancel decisions: ``FetchError`` and
``DownloadError`` are transient, ``ParseError`` and ``DecodeError`` mean
the host changed its page or player script and need a pattern update.
"""

from __future__ import annotations


class TubefetchError(Exception):
    """Base class for all tubefetch errors."""


class FetchError(TubefetchError):
    """Network/transport failure while fetching the page or player script."""

    def __init__(self, message: str, *, url: str, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class ParseError(TubefetchError):
    """Page markup or embedded payload does not have the expected shape."""


class DecodeError(TubefetchError):
    """A stream's signature or n-parameter could not be decoded."""

    def __init__(self, message: str, *, itag: int | None = None) -> None:
        super().__init__(message)
        self.itag = itag


class PatternNotFoundError(DecodeError):
    """A decoder pattern is missing from the player script (script shape changed)."""

    def __init__(self, message: str, *, pattern: str) -> None:
        super().__init__(message)
        self.pattern = pattern


class EvaluationError(DecodeError):
    """The sandboxed script runtime failed to load or run a decoder."""


class DownloadError(TubefetchError):
    """A stream transfer failed; partial output has been removed."""


class DownloadCancelledError(DownloadError):
    """The download was cancelled cooperatively; partial output has been removed."""


class MuxError(TubefetchError):
    """The external remux tool failed."""

    def __init__(
        self, message: str, *, returncode: int | None = None, stderr: str = ""
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class VideoNotFoundError(TubefetchError, LookupError):
    """The requested video id is not in the video cache."""


class StreamNotFoundError(TubefetchError, LookupError):
    """The requested itag is not among the video's resolved streams."""
