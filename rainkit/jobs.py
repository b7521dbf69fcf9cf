"""Split a range of pieces into per-file HTTP range downloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence


@dataclass(frozen=True)
class FileSection:
    """A contiguous region of one file."""

    name: str
    offset: int
    length: int


@dataclass
class Piece:
    """A torrent piece and the file sections it maps to."""

    data: list[FileSection] = field(default_factory=list)
    index: int = 0

    @property
    def length(self) -> int:
        return sum(section.length for section in self.data)


@dataclass
class DownloadJob:
    filename: str
    range_begin: int
    length: int


def create_jobs(pieces: Sequence[Piece], begin: int, end: int) -> list[DownloadJob]:
    """Merge sections of pieces[begin:end] into one job per consecutive file."""
    if end > len(pieces) or begin < 0 or begin > end:
        raise IndexError("piece range out of bounds")
    jobs: list[DownloadJob] = []
    job: DownloadJob | None = None
    for piece in pieces[begin:end]:
        for section in piece.data:
            if job is not None and section.name == job.filename:
                job.length += section.length
                continue
            if job is not None and job.length > 0:  # skip zero byte files
                jobs.append(job)
            job = DownloadJob(section.name, section.offset, section.length)
    if job is not None and job.length > 0:
        jobs.append(job)
    return jobs