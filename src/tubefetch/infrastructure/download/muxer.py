"""Remux separately delivered video and audio with ffmpeg (stream copy)."""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
from pathlib import Path
from typing import Sequence

import structlog

from tubefetch.domain.exceptions import MuxError

log = structlog.get_logger(__name__)

_STDERR_TAIL_CHARS = 2000


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and everything it spawned (its own process group on POSIX)."""
    with contextlib.suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()


class FfmpegMuxer:
    """Runs ``ffmpeg`` as an asyncio subprocess.

    Output goes to a temporary sibling of the destination first and is
    moved into place only on a zero exit, so a failed run never leaves a
    truncated file at the destination.
    """

    def __init__(
        self, ffmpeg_path: str = "ffmpeg", extra_args: Sequence[str] = ()
    ) -> None:
        self._ffmpeg = ffmpeg_path
        self._extra_args = tuple(extra_args)

    def build_command(
        self, video_file: Path, audio_file: Path, output: Path
    ) -> list[str]:
        return [
            self._ffmpeg,
            "-y",
            "-i", str(video_file),
            "-i", str(audio_file),
            "-map", "0:v",
            "-map", "1:a",
            "-c", "copy",
            "-shortest",
            *self._extra_args,
            str(output),
        ]  # fmt: skip

    async def mux(
        self,
        video_file: Path,
        audio_file: Path,
        target_format: str,
        destination: Path,
    ) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        # ffmpeg picks the muxer from the output extension.
        tmp_output = destination.with_name(
            f".{destination.stem}.muxing.{target_format}"
        )
        cmd = self.build_command(video_file, audio_file, tmp_output)
        log.debug("mux_started", destination=str(destination), format=target_format)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=os.name == "posix",
            )
        except FileNotFoundError as e:
            raise MuxError(f"ffmpeg executable not found: {self._ffmpeg}") from e

        try:
            _, stderr_bytes = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                _kill(proc)
                await proc.wait()
            tmp_output.unlink(missing_ok=True)
            log.info("mux_cancelled", destination=str(destination))
            raise

        if proc.returncode != 0:
            tmp_output.unlink(missing_ok=True)
            stderr = stderr_bytes.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:]
            log.error(
                "mux_failed",
                destination=str(destination),
                returncode=proc.returncode,
                stderr_tail=stderr[-300:],
            )
            raise MuxError(
                f"ffmpeg exited with status {proc.returncode}",
                returncode=proc.returncode,
                stderr=stderr,
            )

        if not tmp_output.exists():
            raise MuxError(
                "ffmpeg exited cleanly but wrote no output", returncode=proc.returncode
            )
        os.replace(tmp_output, destination)
        log.info("mux_finished", destination=str(destination))
        return destination
