"""Announcing torrents to UDP trackers."""

from __future__ import annotations

import asyncio
import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Callable, Protocol
from urllib.parse import urlsplit

from .httptracker import _bdecode
from .tracker import AnnounceRequest, AnnounceResponse, DecodeError, TrackerError
from .udpmessages import (
    Action,
    UDPBackOff,
    decode_announce_response,
    decode_connect_response,
    decode_header,
    encode_announce_request,
    encode_connect_request,
)

CONNECTION_ID_INTERVAL = 60.0

_HEADER_SIZE = 8
_log = logging.getLogger(__name__)

UDPAddress = tuple[str, int]


class Blocklist(Protocol):
    """Anything that tells whether an IP address must not be contacted."""

    def blocked(self, ip: str) -> bool: ...


@dataclass
class _Connection:
    task: asyncio.Task | None = None
    connected_at: float | None = None

    def expired(self) -> bool:
        return (
            self.connected_at is not None
            and time.monotonic() - self.connected_at >= CONNECTION_ID_INTERVAL
        )


def _consume_result(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


def _tracker_error(rest: bytes) -> Exception:
    try:
        value = _bdecode(rest)
        if not isinstance(value, dict):
            raise ValueError("error body is not a dictionary")
        reason = value.get(b"failure reason", b"")
        retry_in = value.get(b"retry in", b"")
        if not isinstance(reason, bytes) or not isinstance(retry_in, bytes):
            raise ValueError("invalid error fields")
        failure_reason = reason.decode("utf-8", errors="replace")
    except ValueError:
        return DecodeError()
    try:
        minutes = int(retry_in.decode("ascii"))
    except ValueError:
        minutes = 0
    return TrackerError(failure_reason, minutes * 60.0)


class _Protocol(asyncio.DatagramProtocol):
    def __init__(self, owner: Transport) -> None:
        self._owner = owner

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._owner._handle_datagram(data)

    def error_received(self, exc: Exception) -> None:
        _log.error("udp tracker socket error: %s", exc)


class Transport:
    """Shared UDP socket that connects to trackers and runs announce transactions."""

    def __init__(
        self,
        dns_timeout: float = 5.0,
        blocklist: Blocklist | None = None,
        local_addr: UDPAddress = ("0.0.0.0", 0),
    ) -> None:
        self.dns_timeout = dns_timeout
        self.blocklist = blocklist
        self._local_addr = local_addr
        self._udp: asyncio.DatagramTransport | None = None
        self._listen_error: OSError | None = None
        self._started = False
        self._closed = False
        self._transactions: dict[int, asyncio.Future] = {}
        self._connections: dict[str, _Connection] = {}
        self._senders: set[asyncio.Task] = set()

    async def start(self) -> None:
        """Open the UDP socket; a failure is reported to every later announce."""
        if self._started:
            return
        self._started = True
        loop = asyncio.get_running_loop()
        try:
            self._udp, _ = await loop.create_datagram_endpoint(
                lambda: _Protocol(self),
                local_addr=self._local_addr,
                family=socket.AF_INET,
            )
        except OSError as exc:
            self._listen_error = exc
            _log.error("cannot listen on UDP port: %s", exc)

    def close(self) -> None:
        """Fail all pending requests and close the socket."""
        if self._closed:
            return
        self._closed = True
        for fut in self._transactions.values():
            if not fut.done():
                fut.set_exception(ConnectionError("udp transport closed"))
        self._transactions.clear()
        for conn in self._connections.values():
            if conn.task is not None:
                conn.task.cancel()
        self._connections.clear()
        for sender in list(self._senders):
            sender.cancel()
        if self._udp is not None:
            self._udp.close()

    def _ensure_usable(self) -> None:
        if self._closed:
            raise ConnectionError("udp transport closed")
        if not self._started:
            raise RuntimeError("udp transport not started")
        if self._listen_error is not None:
            raise ConnectionError(str(self._listen_error)) from self._listen_error

    async def announce(
        self, dest: str, request: AnnounceRequest, url_data: str = ""
    ) -> bytes:
        """Send an announce to ``dest`` (host:port) and return the raw reply."""
        self._ensure_usable()
        try:
            addr, connection_id = await asyncio.shield(self._connection_task(dest))
            return await self._transact(
                addr,
                lambda tid: encode_announce_request(connection_id, tid, request, url_data),
            )
        except asyncio.CancelledError:
            if self._closed:
                raise ConnectionError("udp transport closed") from None
            raise

    def _connection_task(self, dest: str) -> asyncio.Task:
        conn = self._connections.get(dest)
        if conn is not None and conn.task is not None and not conn.expired():
            return conn.task
        conn = _Connection()
        conn.task = asyncio.get_running_loop().create_task(self._connect(dest, conn))
        conn.task.add_done_callback(_consume_result)
        self._connections[dest] = conn
        return conn.task

    async def _connect(self, dest: str, conn: _Connection) -> tuple[UDPAddress, int]:
        try:
            addr = await self._resolve(dest)
            reply = await self._transact(addr, encode_connect_request)
            connection_id = decode_connect_response(reply)
        except BaseException:
            if self._connections.get(dest) is conn:
                del self._connections[dest]
            raise
        conn.connected_at = time.monotonic()
        return addr, connection_id

    async def _resolve(self, dest: str) -> UDPAddress:
        host, sep, port_text = dest.rpartition(":")
        if not sep or not port_text.isdigit():
            raise ValueError(f"invalid tracker address: {dest}")
        host = host.strip("[]")
        loop = asyncio.get_running_loop()
        infos = await asyncio.wait_for(
            loop.getaddrinfo(host, int(port_text), family=socket.AF_INET, type=socket.SOCK_DGRAM),
            self.dns_timeout,
        )
        ip, port = infos[0][4][:2]
        if self.blocklist is not None and self.blocklist.blocked(ip):
            raise ConnectionError(f"ip is blocked: {ip}")
        return ip, port

    async def _transact(self, addr: UDPAddress, build: Callable[[int], bytes]) -> bytes:
        if self._closed:
            raise ConnectionError("udp transport closed")
        loop = asyncio.get_running_loop()
        tid = random.getrandbits(31)
        if tid in self._transactions:
            raise RuntimeError("transaction id collision")
        fut: asyncio.Future = loop.create_future()
        self._transactions[tid] = fut
        sender = loop.create_task(self._send_until_done(build(tid), addr))
        self._senders.add(sender)
        sender.add_done_callback(self._senders.discard)
        try:
            return await fut
        finally:
            if self._transactions.get(tid) is fut:
                del self._transactions[tid]
            sender.cancel()

    async def _send_until_done(self, data: bytes, addr: UDPAddress) -> None:
        backoff = UDPBackOff()
        while True:
            if self._udp is not None and not self._udp.is_closing():
                self._udp.sendto(data, addr)
            await asyncio.sleep(backoff.next_backoff())

    def _handle_datagram(self, data: bytes) -> None:
        if self._closed:
            return
        try:
            action, tid = decode_header(data)
        except ValueError as exc:
            _log.error("invalid udp tracker message: %s", exc)
            return
        fut = self._transactions.pop(tid, None)
        if fut is None or fut.done():
            _log.debug("unexpected transaction id: %d", tid)
            return
        _log.debug("received response for transaction id: %d", tid)
        if action == Action.ERROR:
            fut.set_exception(_tracker_error(data[_HEADER_SIZE:]))
        else:
            fut.set_result(data)


def _request_uri(raw_url: str) -> str:
    parts = urlsplit(raw_url)
    uri = parts.path or "/"
    if parts.query:
        uri += "?" + parts.query
    return uri


class UDPTracker:
    """A torrent tracker that speaks UDP."""

    def __init__(self, raw_url: str, transport: Transport) -> None:
        self.raw_url = raw_url
        self.dest = urlsplit(raw_url).netloc
        self.url_data = _request_uri(raw_url)
        self._transport = transport
        self._log = logging.getLogger(f"tracker {self.dest}")

    def url(self) -> str:
        return self.raw_url

    async def announce(self, request: AnnounceRequest) -> AnnounceResponse:
        reply = await self._transport.announce(self.dest, request, self.url_data)
        try:
            response = decode_announce_response(reply)
        except ValueError:
            raise DecodeError() from None
        self._log.debug("announce response: %r", response)
        return response