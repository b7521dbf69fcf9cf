"""Session configuration, session-level errors and the open files limit."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Callable

try:
    import resource
except ImportError:  # not available on Windows
    resource = None  # type: ignore[assignment]

VERSION = "0.0.0"

PUBLIC_PEER_ID_PREFIX = "-RN" + VERSION + "-"
PUBLIC_EXTENSION_HANDSHAKE_CLIENT_VERSION = "Rain " + VERSION
TRACKER_HTTP_PUBLIC_USER_AGENT = "Rain/" + VERSION

DEFAULT_DHT_BOOTSTRAP_NODES = (
    "router.bittorrent.com:6881",
    "dht.transmissionbt.com:6881",
    "router.utorrent.com:6881",
    "dht.libtorrent.org:25401",
    "dht.aelitis.com:6881",
)

_MINUTE = 60.0
_HOUR = 60 * _MINUTE


@dataclass
class Config:
    """Settings of a session. Durations are in seconds, sizes in bytes."""

    # Session
    database: str = "~/rain/session.db"
    data_dir: str = "~/rain/data"
    data_dir_includes_torrent_id: bool = True
    host: str = "0.0.0.0"
    port_begin: int = 20000
    port_end: int = 30000
    max_open_files: int = 10240
    pex_enabled: bool = True
    resume_write_interval: float = 30.0
    private_peer_id_prefix: str = "-RN" + VERSION + "-"
    private_extension_handshake_client_version: str = "Rain " + VERSION
    blocklist_url: str = ""
    blocklist_update_interval: float = 24 * _HOUR
    blocklist_update_timeout: float = 10 * _MINUTE
    blocklist_enabled_for_trackers: bool = True
    blocklist_enabled_for_outgoing_connections: bool = True
    blocklist_enabled_for_incoming_connections: bool = True
    blocklist_max_response_size: int = 100 << 20
    torrent_add_http_timeout: float = 30.0
    max_metadata_size: int = 30 << 20
    max_torrent_size: int = 10 << 20
    max_pieces: int = 64 << 10
    dns_resolve_timeout: float = 5.0
    speed_limit_download: int = 0
    speed_limit_upload: int = 0
    resume_on_startup: bool = True
    health_check_interval: float = 10.0
    health_check_timeout: float = 60.0
    file_permissions: int = 0o750

    # RPC server
    rpc_enabled: bool = True
    rpc_host: str = "127.0.0.1"
    rpc_port: int = 7246
    rpc_shutdown_timeout: float = 5.0

    # DHT node
    dht_enabled: bool = True
    dht_host: str = "0.0.0.0"
    dht_port: int = 7246
    dht_announce_interval: float = 30 * _MINUTE
    dht_min_announce_interval: float = _MINUTE
    dht_bootstrap_nodes: list[str] = field(
        default_factory=lambda: list(DEFAULT_DHT_BOOTSTRAP_NODES)
    )

    # Tracker
    tracker_num_want: int = 200
    tracker_stop_timeout: float = 5.0
    tracker_min_announce_interval: float = _MINUTE
    tracker_http_timeout: float = 10.0
    tracker_http_private_user_agent: str = "Rain/" + VERSION
    tracker_http_max_response_size: int = 2 << 20
    tracker_http_verify_tls: bool = True

    # Peer
    unchoked_peers: int = 3
    optimistic_unchoked_peers: int = 1
    max_requests_in: int = 250
    max_requests_out: int = 250
    default_requests_out: int = 50
    request_timeout: float = 20.0
    endgame_max_duplicate_downloads: int = 20
    max_peer_dial: int = 80
    max_peer_accept: int = 20
    parallel_metadata_downloads: int = 2
    peer_connect_timeout: float = 5.0
    peer_handshake_timeout: float = 10.0
    piece_read_timeout: float = 30.0
    max_peer_addresses: int = 2000
    allowed_fast_set: int = 10

    # IO
    read_cache_block_size: int = 128 << 10
    read_cache_size: int = 256 << 20
    read_cache_ttl: float = _MINUTE
    parallel_reads: int = 1
    parallel_writes: int = 1
    write_cache_size: int = 1 << 30

    # Encryption
    disable_outgoing_encryption: bool = False
    force_outgoing_encryption: bool = False
    force_incoming_encryption: bool = False

    # Web seeds
    webseed_dial_timeout: float = 10.0
    webseed_tls_handshake_timeout: float = 10.0
    webseed_response_header_timeout: float = 10.0
    webseed_response_body_read_timeout: float = 10.0
    webseed_retry_interval: float = _MINUTE
    webseed_verify_tls: bool = True
    webseed_max_sources: int = 10
    webseed_max_downloads: int = 4

    # Command run when a torrent completes.
    on_complete_cmd: list[str] = field(default_factory=list)

    # Network hooks; None means the standard network stack is used.
    dial: Callable[..., Any] | None = None
    listen_tcp: Callable[..., Any] | None = None
    listen_udp: Callable[..., Any] | None = None
    stop_listen: Callable[[int], Any] | None = None


class InputError(Exception):
    """A torrent could not be added because of a problem with the input."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(f"input error: {error}")
        self.error = error
        self.__cause__ = error


class AnnounceError(Exception):
    """An announce to a tracker failed; the message is meant for humans."""

    def __init__(
        self, message: str, error: BaseException | None = None, unknown: bool = False
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error = error
        self.unknown = unknown
        self.__cause__ = error

    def __str__(self) -> str:
        return self.message


def set_open_files_limit(value: int) -> None:
    """Set both limits of open file descriptors; does nothing on Windows."""
    if sys.platform == "win32" or resource is None:
        return
    resource.setrlimit(resource.RLIMIT_NOFILE, (value, value))