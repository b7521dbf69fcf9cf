"""Wire messages of the UDP tracker protocol."""

from __future__ import annotations

import enum
import struct

from .tracker import AnnounceRequest, AnnounceResponse, decode_peers_compact

CONNECTION_ID_MAGIC = 0x41727101980

_HEADER = struct.Struct(">ii")
_CONNECT_REQUEST = struct.Struct(">qii")
_CONNECT_RESPONSE = struct.Struct(">iiq")
_ANNOUNCE_REQUEST = struct.Struct(">qii20s20sqqqiIIiHH")
_ANNOUNCE_RESPONSE = struct.Struct(">iiiii")

_URL_DATA_OPTION = 0x2
_MAX_URL_CHUNK = 255


class Action(enum.IntEnum):
    CONNECT = 0
    ANNOUNCE = 1
    ERROR = 3


class UDPBackOff:
    """Retry intervals for UDP tracker requests, in seconds."""

    _MAX_ATTEMPT = 8

    def __init__(self) -> None:
        self._attempt = 0

    def next_backoff(self) -> float:
        if self._attempt > self._MAX_ATTEMPT:
            self._attempt = self._MAX_ATTEMPT
        value = 15 * (2 ^ self._attempt)
        self._attempt += 1
        return float(value)

    def reset(self) -> None:
        self._attempt = 0


def _action(value: int) -> Action | int:
    try:
        return Action(value)
    except ValueError:
        return value


def encode_connect_request(transaction_id: int) -> bytes:
    return _CONNECT_REQUEST.pack(CONNECTION_ID_MAGIC, Action.CONNECT, transaction_id)


def encode_announce_request(
    connection_id: int,
    transaction_id: int,
    request: AnnounceRequest,
    url_data: str = "",
) -> bytes:
    """Encode an announce packet, appending URL data options in 255-byte chunks."""
    torrent = request.torrent
    key = 0
    peer_id = bytes(torrent.peer_id[:16]) + key.to_bytes(4, "big")
    packet = bytearray(
        _ANNOUNCE_REQUEST.pack(
            connection_id,
            Action.ANNOUNCE,
            transaction_id,
            bytes(torrent.info_hash),
            peer_id,
            torrent.bytes_downloaded,
            torrent.bytes_left,
            torrent.bytes_uploaded,
            int(request.event),
            0,  # IP
            key,
            request.num_want,
            torrent.port & 0xFFFF,
            0,  # extensions
        )
    )
    raw = url_data.encode()
    for pos in range(0, len(raw), _MAX_URL_CHUNK):
        chunk = raw[pos : pos + _MAX_URL_CHUNK]
        packet += bytes([_URL_DATA_OPTION, len(chunk)]) + chunk
    return bytes(packet)


def decode_header(data: bytes) -> tuple[Action | int, int]:
    """Return (action, transaction_id) from the start of a response."""
    if len(data) < _HEADER.size:
        raise ValueError("message too short")
    action, transaction_id = _HEADER.unpack_from(data)
    return _action(action), transaction_id


def decode_connect_response(data: bytes) -> int:
    """Return the connection id from a connect response."""
    if len(data) < _CONNECT_RESPONSE.size:
        raise ValueError("connect response too short")
    action, _, connection_id = _CONNECT_RESPONSE.unpack_from(data)
    if action != Action.CONNECT:
        raise ValueError("invalid action in connect response")
    return connection_id


def decode_announce_response(data: bytes) -> AnnounceResponse:
    if len(data) < _ANNOUNCE_RESPONSE.size:
        raise ValueError("announce response too short")
    action, _, interval, leechers, seeders = _ANNOUNCE_RESPONSE.unpack_from(data)
    if action != Action.ANNOUNCE:
        raise ValueError("invalid action")
    peers = decode_peers_compact(data[_ANNOUNCE_RESPONSE.size :])
    return AnnounceResponse(
        interval=float(interval),
        leechers=leechers,
        seeders=seeders,
        peers=peers,
    )