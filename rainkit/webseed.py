"""Web seed sources for downloading torrent data over HTTP."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .urldownloader import URLDownloader


@dataclass
class WebseedSource:
    """A URL that torrent data can be downloaded from."""

    url: str
    disabled: bool = False
    downloader: URLDownloader | None = None
    last_error: BaseException | None = None
    disabled_at: datetime | None = None
    download_speed: float = 0.0

    def downloading(self) -> bool:
        return self.downloader is not None

    def remaining(self) -> int:
        """Pieces left for this source, not counting the one being downloaded."""
        if self.downloader is None:
            return 0
        return self.downloader.end - self.downloader.read_current() - 1


def new_list(sources: Iterable[str]) -> list[WebseedSource]:
    return [WebseedSource(url=source) for source in sources]