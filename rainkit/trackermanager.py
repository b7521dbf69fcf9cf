"""Shared transports for HTTP and UDP trackers."""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Any, Protocol
from urllib.parse import urlsplit

import aiohttp
from aiohttp.abc import AbstractResolver

from .httptracker import HTTPTracker
from .udptracker import Transport, UDPAddress, UDPTracker


class Blocklist(Protocol):
    """Anything that tells whether an IP address must not be contacted."""

    def blocked(self, ip: str) -> bool: ...


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class _BlocklistResolver(AbstractResolver):
    """Resolves host names with a timeout and drops blocked addresses."""

    def __init__(self, blocklist: Blocklist | None, dns_timeout: float) -> None:
        self._inner = aiohttp.ThreadedResolver()
        self._blocklist = blocklist
        self._dns_timeout = dns_timeout

    async def resolve(self, host: str, port: int = 0, family: int = socket.AF_INET) -> Any:
        hosts = await asyncio.wait_for(self._inner.resolve(host, port, family), self._dns_timeout)
        if self._blocklist is None:
            return hosts
        allowed = [entry for entry in hosts if not self._blocklist.blocked(entry["host"])]
        if not allowed:
            blocked = hosts[0]["host"] if hosts else host
            raise ConnectionError(f"ip is blocked: {blocked}")
        return allowed

    async def close(self) -> None:
        await self._inner.close()


class _BlocklistConnector(aiohttp.TCPConnector):
    """Refuses to connect to literal IP addresses that are blocked."""

    def __init__(self, blocklist: Blocklist | None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._blocklist = blocklist

    async def connect(self, req: Any, traces: Any, timeout: Any) -> Any:
        host = req.url.host
        if self._blocklist is not None and host and _is_ip(host) and self._blocklist.blocked(host):
            raise ConnectionError(f"ip is blocked: {host}")
        return await super().connect(req, traces, timeout)


class TrackerManager:
    """Hands out trackers that share one HTTP session and one UDP socket.

    Use it as an async context manager so that the shared transports are open.
    """

    def __init__(
        self,
        blocklist: Blocklist | None = None,
        dns_timeout: float = 5.0,
        tls_skip_verify: bool = False,
        session: aiohttp.ClientSession | None = None,
        udp_local_addr: UDPAddress = ("0.0.0.0", 0),
    ) -> None:
        self.blocklist = blocklist
        self.dns_timeout = dns_timeout
        self.tls_skip_verify = tls_skip_verify
        self._session = session
        self._owns_session = False
        self._transport = Transport(dns_timeout, blocklist, udp_local_addr)

    async def __aenter__(self) -> TrackerManager:
        self._ensure_session()
        await self._transport.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession | None:
        if self._session is not None:
            return self._session
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return None
        connector_args: dict[str, Any] = {
            "resolver": _BlocklistResolver(self.blocklist, self.dns_timeout),
        }
        if self.tls_skip_verify:
            connector_args["ssl"] = False
        connector = _BlocklistConnector(self.blocklist, **connector_args)
        self._session = aiohttp.ClientSession(connector=connector)
        self._owns_session = True
        return self._session

    def get(
        self,
        url: str,
        http_timeout: float,
        http_user_agent: str,
        http_max_response_length: int,
    ) -> HTTPTracker | UDPTracker:
        """Return a tracker for ``url``; only http, https and udp are supported."""
        scheme = urlsplit(url).scheme
        if scheme in ("http", "https"):
            return HTTPTracker(
                url,
                timeout=http_timeout,
                user_agent=http_user_agent,
                max_response_length=http_max_response_length,
                session=self._ensure_session(),
            )
        if scheme == "udp":
            return UDPTracker(url, self._transport)
        raise ValueError(f"unsupported tracker scheme: {scheme}")

    async def close(self) -> None:
        """Close the UDP socket and the HTTP session this manager opened."""
        self._transport.close()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False