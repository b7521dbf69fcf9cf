"""Announcing torrents to HTTP trackers."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Mapping
from urllib.parse import urlsplit

import aiohttp

from .tracker import (
    Address,
    AnnounceRequest,
    AnnounceResponse,
    DecodeError,
    Event,
    TrackerError,
    decode_peers_compact,
)


class StatusError(Exception):
    """The tracker replied with an undecodable body and a status other than 200."""

    def __init__(self, code: int, headers: Mapping[str, str], body: str) -> None:
        super().__init__(f"http status: {code}")
        self.code = code
        self.headers = dict(headers)
        self.body = body

    def __str__(self) -> str:
        return f"http status: {self.code}"


def percent_escape(data: bytes) -> str:
    """Put a ``%`` before the hex form of every byte, escaping each one explicitly."""
    return "".join(f"%{byte:02x}" for byte in bytes(data))


def _bdecode(data: bytes) -> Any:
    try:
        value, pos = _decode_at(data, 0)
    except (IndexError, RecursionError) as exc:
        raise ValueError("malformed bencode") from exc
    if pos != len(data):
        raise ValueError("trailing data after bencode value")
    return value


def _decode_at(data: bytes, pos: int) -> tuple[Any, int]:
    if pos >= len(data):
        raise ValueError("unexpected end of data")
    head = data[pos : pos + 1]
    if head == b"i":
        end = data.index(b"e", pos)
        return int(data[pos + 1 : end]), end + 1
    if head == b"l":
        items = []
        pos += 1
        while data[pos : pos + 1] != b"e":
            item, pos = _decode_at(data, pos)
            items.append(item)
        return items, pos + 1
    if head == b"d":
        result: dict[bytes, Any] = {}
        pos += 1
        while data[pos : pos + 1] != b"e":
            key, pos = _decode_at(data, pos)
            if not isinstance(key, bytes):
                raise ValueError("dictionary key is not a string")
            result[key], pos = _decode_at(data, pos)
        return result, pos + 1
    if head.isdigit():
        colon = data.index(b":", pos)
        length = int(data[pos:colon])
        start = colon + 1
        if start + length > len(data):
            raise ValueError("string exceeds data")
        return data[start : start + length], start + length
    raise ValueError("invalid bencode type")


def _field(response: dict, key: str, kind: type, default: Any) -> Any:
    value = response.get(key.encode(), default)
    if not isinstance(value, kind):
        raise ValueError(f"invalid type for {key!r}")
    return value


def _text(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _parse_peers_dictionary(peers: list) -> list[Address]:
    addrs = []
    for entry in peers:
        if not isinstance(entry, dict):
            raise DecodeError()
        ip = entry.get(b"ip", b"")
        port = entry.get(b"port", 0)
        if not isinstance(ip, bytes) or not isinstance(port, int) or not 0 <= port <= 0xFFFF:
            raise DecodeError()
        addrs.append((_text(ip), port))
    return addrs


def _packed(host: str) -> bytes | None:
    try:
        return ipaddress.ip_address(host).packed
    except ValueError:
        return None


class HTTPTracker:
    """A torrent tracker that talks HTTP."""

    def __init__(
        self,
        raw_url: str,
        timeout: float = 10.0,
        user_agent: str = "",
        max_response_length: int = 2 << 20,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.raw_url = raw_url
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_response_length = max_response_length
        self.tracker_id = ""
        self._session = session
        self._log = logging.getLogger(f"tracker {urlsplit(raw_url).netloc}")

    def url(self) -> str:
        return self.raw_url

    def _announce_url(self, request: AnnounceRequest) -> str:
        # Some private trackers require info_hash and peer_id to come first.
        torrent = request.torrent
        parts = [
            self.raw_url,
            "&info_hash=" if "?" in self.raw_url else "?info_hash=",
            percent_escape(torrent.info_hash),
            "&peer_id=",
            percent_escape(torrent.peer_id),
            f"&port={torrent.port}",
            f"&uploaded={torrent.bytes_uploaded}",
            f"&downloaded={torrent.bytes_downloaded}",
            f"&left={torrent.bytes_left}",
            "&compact=1",
            "&no_peer_id=1",
            f"&numwant={request.num_want}",
        ]
        if request.event != Event.NONE:
            parts.append(f"&event={request.event}")
        if self.tracker_id:
            parts.append(f"&trackerid={self.tracker_id}")
        parts.append("&key=" + bytes(torrent.peer_id[16:20]).hex())
        return "".join(parts)

    async def _fetch(self, url: str) -> tuple[int, Mapping[str, str], bytes]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        if self._session is None:
            async with aiohttp.ClientSession() as session:
                return await self._do(session, url, timeout)
        return await self._do(self._session, url, timeout)

    async def _do(
        self, session: aiohttp.ClientSession, url: str, timeout: aiohttp.ClientTimeout
    ) -> tuple[int, Mapping[str, str], bytes]:
        headers = {"User-Agent": self.user_agent}
        async with session.get(url, headers=headers, timeout=timeout) as resp:
            self._log.debug("tracker responded %d with %s bytes body", resp.status, resp.content_length)
            if resp.content_length is not None and resp.content_length > self.max_response_length:
                raise ValueError(f"tracker response too large: {resp.content_length}")
            chunks = bytearray()
            while len(chunks) < self.max_response_length:
                chunk = await resp.content.read(self.max_response_length - len(chunks))
                if not chunk:
                    break
                chunks += chunk
            return resp.status, dict(resp.headers), bytes(chunks)

    async def announce(self, request: AnnounceRequest) -> AnnounceResponse:
        """Announce the torrent with a GET request to the tracker."""
        url = self._announce_url(request)
        self._log.debug("making request to: %r", url)
        code, headers, body = await self._fetch(url)
        self._log.debug("read %d bytes from body", len(body))

        try:
            response = _bdecode(body)
            if not isinstance(response, dict):
                raise ValueError("response is not a dictionary")
            failure_reason = _text(_field(response, "failure reason", bytes, b""))
            retry_in = _text(_field(response, "retry in", bytes, b""))
            warning = _text(_field(response, "warning message", bytes, b""))
            interval = _field(response, "interval", int, 0)
            min_interval = _field(response, "min interval", int, 0)
            tracker_id = _text(_field(response, "tracker id", bytes, b""))
            complete = _field(response, "complete", int, 0)
            incomplete = _field(response, "incomplete", int, 0)
            external_ip = _field(response, "external ip", bytes, b"")
        except ValueError:
            if code != 200:
                raise StatusError(code, headers, _text(body)) from None
            raise DecodeError() from None

        if failure_reason:
            try:
                minutes = int(retry_in)
            except ValueError:
                minutes = 0
            raise TrackerError(failure_reason, minutes * 60.0)

        if tracker_id:
            self.tracker_id = tracker_id

        raw_peers = response.get(b"peers")
        peers: list[Address] = []
        if isinstance(raw_peers, list):
            peers = _parse_peers_dictionary(raw_peers)
        elif isinstance(raw_peers, bytes):
            peers = decode_peers_compact(raw_peers)
        elif raw_peers is not None:
            raise DecodeError()
        self._log.debug("got %d peers", len(peers))

        if external_ip:
            peers = [peer for peer in peers if _packed(peer[0]) != external_ip]

        return AnnounceResponse(
            interval=float(interval),
            min_interval=float(min_interval),
            leechers=incomplete,
            seeders=complete,
            warning_message=warning,
            peers=peers,
        )