"""Download pieces of a torrent from an HTTP web seed."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Sequence
from urllib.parse import quote

import aiohttp

from .jobs import Piece, create_jobs

# Characters that a URL path segment leaves unescaped besides the unreserved set.
_PATH_SAFE = "$&+:=@"


class Bucket(Protocol):
    """A rate limiter: take(n) returns the seconds to wait before using n bytes."""

    def take(self, count: int) -> float: ...


@dataclass
class PieceResult:
    """A downloaded piece, or the error that stopped the download."""

    downloader: URLDownloader
    buffer: bytes = b""
    index: int = 0
    error: BaseException | None = None
    done: bool = False


class URLDownloader:
    """Downloads the pieces ``begin`` to ``end`` from one HTTP source."""

    def __init__(self, source: str, begin: int, end: int, bucket: Bucket | None = None) -> None:
        self.url = source
        self.begin = begin
        self.end = end
        self.current = begin
        self.bucket = bucket
        self._closed = asyncio.Event()

    def __str__(self) -> str:
        return self.url

    def close(self) -> None:
        """Stop the download; no more results are produced."""
        self._closed.set()

    def update_end(self, value: int) -> None:
        self.end = value

    def read_current(self) -> int:
        """Index of the piece being downloaded."""
        return self.current

    def get_url(self, filename: str, multifile: bool) -> str:
        src = self.url
        if not multifile:
            if src.endswith("/"):
                src += quote(filename, safe=_PATH_SAFE)
            return src
        if not src.endswith("/"):
            src += "/"
        return src + quote(filename, safe=_PATH_SAFE)

    async def _wait_closed(self, delay: float) -> bool:
        if delay <= 0:
            return self._closed.is_set()
        try:
            await asyncio.wait_for(self._closed.wait(), delay)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    async def _read(resp: aiohttp.ClientResponse, size: int, read_timeout: float) -> bytes:
        data = bytearray()
        while len(data) < size:
            chunk = await asyncio.wait_for(resp.content.read(size - len(data)), read_timeout)
            if not chunk:
                raise EOFError("unexpected end of response body")
            data += chunk
        return bytes(data)

    async def run(
        self,
        session: aiohttp.ClientSession,
        pieces: Sequence[Piece],
        multifile: bool,
        read_timeout: float,
    ) -> AsyncIterator[PieceResult]:
        """Yield a result for each downloaded piece, or one carrying the error."""
        jobs = create_jobs(pieces, self.begin, self.end)
        if not jobs:
            return
        buf = bytearray()
        target = pieces[self.current].length
        for job in jobs:
            if self._closed.is_set():
                return
            url = self.get_url(job.filename, multifile)
            headers = {"Range": f"bytes={job.range_begin}-{job.range_begin + job.length - 1}"}
            try:
                async with session.get(url, headers=headers) as resp:
                    if resp.status not in (200, 206):
                        raise ConnectionError(f"unexpected status code: {resp.status}")
                    pos = 0
                    while pos < job.length:
                        size = min(target - len(buf), job.length - pos)
                        if self.bucket is not None:
                            if await self._wait_closed(self.bucket.take(size)):
                                return
                        buf += await self._read(resp, size, read_timeout)
                        pos += size
                        if len(buf) == target:
                            index = self.current
                            done = self.current >= self.end - 1
                            if self._closed.is_set():
                                return
                            yield PieceResult(self, bytes(buf), index, None, done)
                            if done:
                                return
                            self.current += 1
                            buf = bytearray()
                            target = pieces[self.current].length
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, EOFError) as exc:
                if not self._closed.is_set():
                    yield PieceResult(self, error=exc)
                return