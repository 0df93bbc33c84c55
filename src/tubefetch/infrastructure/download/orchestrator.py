"""Fetch one or two resolved streams and produce a single output file.

One stream is written to ``<destination>.part`` and renamed into place.
Two streams (video-only + audio-only) are fetched concurrently into temp
files and handed to the muxer; the temp files are removed afterwards no
matter how the download ends.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
import threading
from pathlib import Path
from typing import Awaitable, Sequence, TypeVar

import httpx
import structlog

from tubefetch.domain.entities.media import DownloadProgress, ResolvedStream
from tubefetch.domain.exceptions import DownloadCancelledError, DownloadError
from tubefetch.domain.ports.downloader import MuxerPort, ProgressSink

log = structlog.get_logger(__name__)

T = TypeVar("T")


class _ProgressCounter:
    """Cumulative byte counter shared by concurrent transfers.

    The sink is called under the lock, so reported values never go
    backwards even when both transfers report at once.
    """

    def __init__(self, total: int, sink: ProgressSink | None) -> None:
        self.total = total
        self.downloaded = 0
        self._sink = sink
        self._lock = threading.Lock()

    def add(self, n: int) -> None:
        with self._lock:
            self.downloaded += n
            if self._sink is not None:
                self._sink(DownloadProgress(self.downloaded, self.total))


class StreamDownloader:
    """Streams media bytes with httpx and remuxes split streams."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        muxer: MuxerPort,
        *,
        chunk_size: int = 64 * 1024,
        temp_dir: Path | None = None,
    ) -> None:
        self._http = http_client
        self._muxer = muxer
        self._chunk_size = chunk_size
        self._temp_dir = temp_dir

    async def download(
        self,
        streams: Sequence[ResolvedStream],
        destination: Path,
        *,
        progress: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Path:
        if not 1 <= len(streams) <= 2:
            raise ValueError(f"expected one or two streams, got {len(streams)}")

        counter = _ProgressCounter(
            total=sum(s.content_length for s in streams), sink=progress
        )
        log.info(
            "download_started",
            destination=str(destination),
            itags=[s.itag for s in streams],
            total_bytes=counter.total,
        )

        destination.parent.mkdir(parents=True, exist_ok=True)
        if len(streams) == 1:
            work = self._download_single(streams[0], destination, counter)
        else:
            work = self._download_pair(streams[0], streams[1], destination, counter)

        try:
            result = await self._until_cancelled(work, cancel)
        except (DownloadCancelledError, asyncio.CancelledError):
            log.info("download_cancelled", destination=str(destination))
            raise
        except Exception as e:
            log.error("download_failed", destination=str(destination), error=str(e))
            raise

        log.info(
            "download_finished",
            destination=str(destination),
            downloaded_bytes=counter.downloaded,
        )
        return result

    async def _until_cancelled(
        self, work: Awaitable[T], cancel: asyncio.Event | None
    ) -> T:
        """Await *work*, cancelling it as soon as *cancel* is set."""
        if cancel is None:
            return await work
        if cancel.is_set():
            if asyncio.iscoroutine(work):
                work.close()
            raise DownloadCancelledError("download cancelled before start")

        task = asyncio.ensure_future(work)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if task.cancelled():
            raise DownloadCancelledError("download cancelled")
        return task.result()

    async def _transfer(
        self, stream: ResolvedStream, path: Path, counter: _ProgressCounter
    ) -> int:
        """Stream *stream*'s body into *path*. Returns bytes written."""
        received = 0
        try:
            resp = await self._http.send(
                self._http.build_request("GET", stream.url), stream=True
            )
            try:
                if resp.status_code < 200 or resp.status_code >= 300:
                    raise DownloadError(
                        f"itag {stream.itag} returned HTTP {resp.status_code}"
                    )
                with path.open("wb") as fh:
                    async for chunk in resp.aiter_bytes(self._chunk_size):
                        fh.write(chunk)
                        received += len(chunk)
                        counter.add(len(chunk))
            finally:
                await resp.aclose()
        except httpx.HTTPError as e:
            raise DownloadError(f"itag {stream.itag} transfer failed: {e}") from e
        except OSError as e:
            raise DownloadError(f"itag {stream.itag} could not be written: {e}") from e

        if stream.content_length and received < stream.content_length:
            raise DownloadError(
                f"itag {stream.itag} ended after {received} of "
                f"{stream.content_length} bytes"
            )
        log.debug("stream_transferred", itag=stream.itag, bytes=received)
        return received

    async def _download_single(
        self, stream: ResolvedStream, destination: Path, counter: _ProgressCounter
    ) -> Path:
        part = destination.with_name(f"{destination.name}.part")
        try:
            await self._transfer(stream, part, counter)
            try:
                os.replace(part, destination)
            except OSError as e:
                raise DownloadError(f"could not move download to {destination}: {e}") from e
        finally:
            part.unlink(missing_ok=True)
        return destination

    def _temp_file(self, stream: ResolvedStream) -> Path:
        fd, name = tempfile.mkstemp(
            prefix="tubefetch-",
            suffix=f".{stream.itag}.{stream.details.container}",
            dir=self._temp_dir,
        )
        os.close(fd)
        return Path(name)

    async def _download_pair(
        self,
        video: ResolvedStream,
        audio: ResolvedStream,
        destination: Path,
        counter: _ProgressCounter,
    ) -> Path:
        video_tmp = self._temp_file(video)
        audio_tmp = self._temp_file(audio)
        try:
            await self._transfer_both(
                (video, video_tmp), (audio, audio_tmp), counter=counter
            )
            return await self._muxer.mux(
                video_tmp, audio_tmp, video.details.container, destination
            )
        finally:
            video_tmp.unlink(missing_ok=True)
            audio_tmp.unlink(missing_ok=True)

    async def _transfer_both(
        self,
        *jobs: tuple[ResolvedStream, Path],
        counter: _ProgressCounter,
    ) -> None:
        tasks = [
            asyncio.create_task(
                self._transfer(stream, path, counter), name=f"transfer-{stream.itag}"
            )
            for stream, path in jobs
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for (stream, _), task in zip(jobs, tasks):
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                raise DownloadError(
                    f"transfer of itag {stream.itag} failed: {error}"
                ) from error
