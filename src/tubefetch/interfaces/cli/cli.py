from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from tubefetch.domain.entities.media import DownloadProgress, VideoDescriptor
from tubefetch.domain.exceptions import (
    DecodeError,
    DownloadCancelledError,
    DownloadError,
    FetchError,
    MuxError,
    ParseError,
    TubefetchError,
)
from tubefetch.infrastructure.composition import build_services
from tubefetch.infrastructure.config import AppConfig, load_config
from tubefetch.infrastructure.logging.setup import configure_logging, shutdown_logging

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FETCH = 2
EXIT_PARSE = 3
EXIT_DOWNLOAD = 4
EXIT_CANCELLED = 130

_PROGRESS_STEP = 0.05


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tubefetch")

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    formats = sub.add_parser("formats", help="List the resolvable streams of a video.")
    formats.add_argument("url", help="Watch-page URL.")

    download = sub.add_parser("download", help="Download one stream of a video.")
    download.add_argument("url", help="Watch-page URL.")
    download.add_argument(
        "--itag", required=True, type=int, help="Stream identifier to download."
    )
    download.add_argument(
        "--output",
        default=".",
        help="Output directory (default: current directory).",
    )

    return parser.parse_args(argv)


def _exit_code_for(error: TubefetchError) -> int:
    if isinstance(error, DownloadCancelledError):
        return EXIT_CANCELLED
    if isinstance(error, FetchError):
        return EXIT_FETCH
    if isinstance(error, (ParseError, DecodeError)):
        return EXIT_PARSE
    if isinstance(error, (DownloadError, MuxError)):
        return EXIT_DOWNLOAD
    return 1


def _print_formats(video: VideoDescriptor) -> None:
    print(f"{video.video_id}  {video.title}")
    for stream in video.streams:
        if stream.content_length:
            size = f"{stream.content_length / 1_048_576:8.1f} MiB"
        else:
            size = "       ? MiB"
        print(f"  {stream.itag:>4}  {size}  {stream.details.label}")
    if video.unsupported_itags:
        skipped = ", ".join(str(i) for i in video.unsupported_itags)
        print(f"  (unsupported: {skipped})")


class _ProgressLogger:
    """Logs a ``download_progress`` event every few percent."""

    def __init__(self, step: float = _PROGRESS_STEP) -> None:
        self._step = step
        self._next = step

    def __call__(self, progress: DownloadProgress) -> None:
        if progress.total <= 0 or progress.fraction < self._next:
            return
        while self._next <= progress.fraction:
            self._next += self._step
        log.info(
            "download_progress",
            percent=round(progress.fraction * 100),
            downloaded_bytes=progress.downloaded,
            total_bytes=progress.total,
        )


class _InterruptHandler:
    """SIGINT handler.

    While a download runs, the first interrupt sets the download's cancel
    event so partial files get cleaned up; any other interrupt cancels the
    command task outright.
    """

    def __init__(self, task: asyncio.Task[Any], cancel: asyncio.Event) -> None:
        self._task = task
        self._cancel = cancel
        self.downloading = False

    def __call__(self) -> None:
        if self.downloading and not self._cancel.is_set():
            log.info("download_cancel_requested")
            self._cancel.set()
        else:
            self._task.cancel()


async def _run(args: argparse.Namespace, config: AppConfig) -> int:
    cancel = asyncio.Event()
    task = asyncio.current_task()
    if task is None:
        raise RuntimeError("command must run inside an asyncio task")
    interrupt = _InterruptHandler(task, cancel)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, interrupt)
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform/loop

    async with build_services(config) as services:
        video = await services.resolve_video.execute(args.url)
        if args.command == "formats":
            _print_formats(video)
            return EXIT_OK

        interrupt.downloading = True
        path = await services.download_video.execute(
            video.video_id,
            args.itag,
            Path(args.output),
            progress=_ProgressLogger(),
            cancel=cancel,
        )
        print(path)
        return EXIT_OK


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Loads config exactly once, configures logging, then runs the command.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )
    configure_logging(config)

    try:
        return asyncio.run(_run(args, config))
    except TubefetchError as e:
        code = _exit_code_for(e)
        log.error("command_failed", command=args.command, error=str(e), exit_code=code)
        return code
    except (KeyboardInterrupt, asyncio.CancelledError):
        log.info("command_interrupted", command=args.command)
        return EXIT_CANCELLED
    finally:
        shutdown_logging()


if __name__ == "__main__":
    raise SystemExit(start())
