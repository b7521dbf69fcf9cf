"""JSON-RPC 2.0 client for a remote torrent session."""

from __future__ import annotations

import base64
import itertools
import json
import urllib.request
from dataclasses import dataclass
from typing import Any, BinaryIO


class RPCError(Exception):
    """An error object returned by the remote session."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return self.message


@dataclass
class AddTorrentOptions:
    """Optional parameters for adding a new torrent."""

    id: str = ""
    stopped: bool = False
    stop_after_download: bool = False
    stop_after_metadata: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "ID": self.id,
            "Stopped": self.stopped,
            "StopAfterDownload": self.stop_after_download,
            "StopAfterMetadata": self.stop_after_metadata,
        }


def _options(options: AddTorrentOptions | None) -> dict[str, Any]:
    return (options or AddTorrentOptions()).to_wire()


class Client:
    """Calls methods of a remote session over HTTP."""

    def __init__(self, addr: str, timeout: float = 10.0) -> None:
        self.addr = addr
        self.timeout = timeout
        self._ids = itertools.count()
        self._closed = False

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def set_timeout(self, seconds: float) -> None:
        self.timeout = seconds

    def close(self) -> None:
        self._closed = True

    def _call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        if self._closed:
            raise ConnectionError("client is closed")
        request_id = next(self._ids)
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": request_id}
        if params is not None:
            payload["params"] = params
        request = urllib.request.Request(
            self.addr,
            data=json.dumps(payload).encode(),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=self.timeout) as response:
            reply = json.loads(response.read())
        error = reply.get("error")
        if error is not None:
            raise RPCError(error.get("code", 0), error.get("message", ""), error.get("data"))
        if reply.get("id") != request_id:
            raise ValueError("mismatched response id")
        result = reply.get("result")
        return {} if result is None else result

    def server_version(self) -> str:
        return self._call("Session.Version")

    def list_torrents(self) -> list[dict[str, Any]]:
        return self._call("Session.ListTorrents").get("Torrents") or []

    def add_torrent(self, stream: BinaryIO, options: AddTorrentOptions | None = None) -> dict[str, Any]:
        """Add a torrent from the contents of a .torrent file."""
        encoded = base64.b64encode(stream.read()).decode("ascii")
        params = {"Torrent": encoded, "AddTorrentOptions": _options(options)}
        return self._call("Session.AddTorrent", params).get("Torrent") or {}

    def add_uri(self, uri: str, options: AddTorrentOptions | None = None) -> dict[str, Any]:
        """Add a torrent from an HTTP or magnet link."""
        params = {"URI": uri, "AddTorrentOptions": _options(options)}
        return self._call("Session.AddURI", params).get("Torrent") or {}

    def remove_torrent(self, torrent_id: str) -> None:
        self._call("Session.RemoveTorrent", {"ID": torrent_id})

    def clean_database(self) -> None:
        self._call("Session.CleanDatabase", {})

    def get_torrent_stats(self, torrent_id: str) -> dict[str, Any]:
        return self._call("Session.GetTorrentStats", {"ID": torrent_id}).get("Stats") or {}

    def get_session_stats(self) -> dict[str, Any]:
        return self._call("Session.GetSessionStats", {}).get("Stats") or {}

    def get_magnet(self, torrent_id: str) -> str:
        return self._call("Session.GetMagnet", {"ID": torrent_id}).get("Magnet", "")

    def get_torrent(self, torrent_id: str) -> bytes:
        """Return the bytes of the .torrent file."""
        reply = self._call("Session.GetTorrent", {"ID": torrent_id})
        return base64.b64decode(reply.get("Torrent", ""), validate=True)

    def get_torrent_trackers(self, torrent_id: str) -> list[dict[str, Any]]:
        return self._call("Session.GetTorrentTrackers", {"ID": torrent_id}).get("Trackers") or []

    def get_torrent_peers(self, torrent_id: str) -> list[dict[str, Any]]:
        return self._call("Session.GetTorrentPeers", {"ID": torrent_id}).get("Peers") or []

    def get_torrent_webseeds(self, torrent_id: str) -> list[dict[str, Any]]:
        return self._call("Session.GetTorrentWebseeds", {"ID": torrent_id}).get("Webseeds") or []

    def start_torrent(self, torrent_id: str) -> None:
        self._call("Session.StartTorrent", {"ID": torrent_id})

    def stop_torrent(self, torrent_id: str) -> None:
        self._call("Session.StopTorrent", {"ID": torrent_id})

    def announce_torrent(self, torrent_id: str) -> None:
        """Force a re-announce to trackers and DHT."""
        self._call("Session.AnnounceTorrent", {"ID": torrent_id})

    def verify_torrent(self, torrent_id: str) -> None:
        """Stop the torrent and verify its pieces on disk; it stays stopped."""
        self._call("Session.VerifyTorrent", {"ID": torrent_id})

    def move_torrent(self, torrent_id: str, target: str) -> None:
        self._call("Session.MoveTorrent", {"ID": torrent_id, "Target": target})

    def start_all_torrents(self) -> None:
        self._call("Session.StartAllTorrents", {})

    def stop_all_torrents(self) -> None:
        self._call("Session.StopAllTorrents", {})

    def add_peer(self, torrent_id: str, addr: str) -> None:
        self._call("Session.AddPeer", {"ID": torrent_id, "Addr": addr})

    def add_tracker(self, torrent_id: str, uri: str) -> None:
        self._call("Session.AddTracker", {"ID": torrent_id, "URL": uri})