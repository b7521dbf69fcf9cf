"""Tracker primitives: compact peers, announce requests and responses, tiers."""

from __future__ import annotations

import enum
import ipaddress
import random
import struct
from dataclasses import dataclass, field
from typing import Iterable, Protocol

Address = tuple[str, int]

_COMPACT = struct.Struct(">4sH")


@dataclass(frozen=True)
class CompactPeer:
    """A 4-byte IPv4 address and a 2-byte port, usable as a dict key."""

    ip: bytes
    port: int

    def __post_init__(self) -> None:
        if len(self.ip) != 4:
            raise ValueError("compact peer IP must be 4 bytes")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError("port out of range")

    @classmethod
    def from_address(cls, host: str, port: int) -> CompactPeer:
        """Build from a host string; non-IPv4 addresses become 0.0.0.0."""
        addr = ipaddress.ip_address(host)
        if isinstance(addr, ipaddress.IPv6Address):
            mapped = addr.ipv4_mapped
            packed = mapped.packed if mapped is not None else bytes(4)
        else:
            packed = addr.packed
        return cls(packed, port & 0xFFFF)

    def addr(self) -> Address:
        """Return the peer as a (host, port) tuple."""
        return str(ipaddress.IPv4Address(self.ip)), self.port

    def to_bytes(self) -> bytes:
        return _COMPACT.pack(self.ip, self.port)

    @classmethod
    def from_bytes(cls, data: bytes) -> CompactPeer:
        if len(data) != _COMPACT.size:
            raise ValueError("invalid compact peer length")
        ip, port = _COMPACT.unpack(data)
        return cls(ip, port)


def decode_peers_compact(data: bytes) -> list[Address]:
    """Parse a concatenated list of compact peers."""
    if len(data) % _COMPACT.size != 0:
        raise ValueError("invalid peer list length")
    return [
        CompactPeer.from_bytes(data[pos : pos + _COMPACT.size]).addr()
        for pos in range(0, len(data), _COMPACT.size)
    ]


def parse_dht_peers(peers: Iterable[bytes | str]) -> list[Address]:
    """Convert DHT peer strings to addresses; only IPv4 entries are kept."""
    addrs = []
    for peer in peers:
        raw = peer.encode("latin-1") if isinstance(peer, str) else bytes(peer)
        if len(raw) != _COMPACT.size:
            continue
        addrs.append(CompactPeer.from_bytes(raw).addr())
    return addrs


class Event(enum.IntEnum):
    """Announce event; values match the UDP tracker protocol."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3

    def __str__(self) -> str:
        return _EVENT_NAMES[self]


_EVENT_NAMES = {
    Event.NONE: "empty",
    Event.COMPLETED: "completed",
    Event.STARTED: "started",
    Event.STOPPED: "stopped",
}


@dataclass
class TrackerTorrent:
    """Torrent fields sent in an announce request."""

    bytes_uploaded: int = 0
    bytes_downloaded: int = 0
    bytes_left: int = 0
    info_hash: bytes = field(default_factory=lambda: bytes(20))
    peer_id: bytes = field(default_factory=lambda: bytes(20))
    port: int = 0


@dataclass
class AnnounceRequest:
    torrent: TrackerTorrent
    event: Event = Event.NONE
    num_want: int = 0


@dataclass
class AnnounceResponse:
    """Announce result; intervals are in seconds."""

    interval: float = 0.0
    min_interval: float = 0.0
    leechers: int = 0
    seeders: int = 0
    warning_message: str = ""
    peers: list[Address] = field(default_factory=list)


class DecodeError(Exception):
    """The tracker response could not be decoded."""

    def __init__(self, message: str = "cannot decode response") -> None:
        super().__init__(message)


class TrackerError(Exception):
    """Failure reason sent by the tracker; retry_in is in seconds."""

    def __init__(self, failure_reason: str, retry_in: float = 0.0) -> None:
        super().__init__(failure_reason)
        self.failure_reason = failure_reason
        self.retry_in = retry_in

    def __str__(self) -> str:
        return self.failure_reason


class _Tracker(Protocol):
    async def announce(self, request: AnnounceRequest) -> AnnounceResponse: ...

    def url(self) -> str: ...


class Tier:
    """A group of trackers; a failed announce moves on to the next one."""

    def __init__(self, trackers: Iterable[_Tracker], rng: random.Random | None = None) -> None:
        self.trackers = list(trackers)
        (rng or random).shuffle(self.trackers)
        self._index = 0

    def _load_index(self) -> int:
        return 0 if self._index >= len(self.trackers) else self._index

    async def announce(self, request: AnnounceRequest) -> AnnounceResponse:
        index = self._load_index()
        try:
            return await self.trackers[index].announce(request)
        except Exception:
            if self._index == index:
                self._index = index + 1
            raise

    def url(self) -> str:
        return self.trackers[self._load_index()].url()