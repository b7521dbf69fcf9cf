import asyncio
import contextlib
import struct

import pytest

from rainkit.tracker import (
    AnnounceRequest,
    CompactPeer,
    DecodeError,
    TrackerError,
    TrackerTorrent,
)
from rainkit.udpmessages import CONNECTION_ID_MAGIC
from rainkit.udptracker import Transport, UDPTracker

CONN_ID = 12345


class FakeTracker(asyncio.DatagramProtocol):
    def __init__(self, mode):
        self.mode = mode
        self.packets = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.packets.append(data)
        _, action, tid = struct.unpack_from(">qii", data)
        if action == 0:
            reply = struct.pack(">iiq", 0, tid, CONN_ID)
        elif self.mode == "ok":
            reply = struct.pack(">iiiii", 1, tid, 1800, 3, 7)
            reply += CompactPeer.from_address("1.2.3.4", 5).to_bytes()
        elif self.mode == "error":
            reply = struct.pack(">ii", 3, tid) + b"d14:failure reason6:denied8:retry in1:2e"
        elif self.mode == "garbage":
            reply = struct.pack(">ii", 3, tid) + b"not bencode"
        elif self.mode == "bad_action":
            reply = struct.pack(">iiiii", 2, tid, 0, 0, 0)
        else:
            return
        self.transport.sendto(reply, addr)


class BlockAll:
    def blocked(self, ip):
        return True


@contextlib.asynccontextmanager
async def running(mode="ok", blocklist=None):
    loop = asyncio.get_running_loop()
    server_transport, server = await loop.create_datagram_endpoint(
        lambda: FakeTracker(mode), local_addr=("127.0.0.1", 0)
    )
    port = server_transport.get_extra_info("sockname")[1]
    transport = Transport(blocklist=blocklist, local_addr=("127.0.0.1", 0))
    await transport.start()
    try:
        yield server, transport, f"udp://127.0.0.1:{port}/announce?a=b"
    finally:
        transport.close()
        server_transport.close()


def make_request():
    torrent = TrackerTorrent(
        info_hash=bytes([6]) + bytes(19),
        peer_id=bytes([1]) + bytes(19),
        port=1111,
        bytes_left=1,
    )
    return AnnounceRequest(torrent=torrent, num_want=10)


@pytest.mark.asyncio
async def test_announce_returns_peers():
    async with running() as (_, transport, url):
        tracker = UDPTracker(url, transport)
        resp = await asyncio.wait_for(tracker.announce(make_request()), 5)
    assert resp.peers == [("1.2.3.4", 5)]
    assert resp.interval == 1800.0
    assert resp.leechers == 3
    assert resp.seeders == 7


@pytest.mark.asyncio
async def test_connect_then_announce_packets():
    request = make_request()
    async with running() as (server, transport, url):
        tracker = UDPTracker(url, transport)
        await asyncio.wait_for(tracker.announce(request), 5)
    connect, announce = server.packets
    assert struct.unpack_from(">qi", connect) == (CONNECTION_ID_MAGIC, 0)
    conn_id, action = struct.unpack_from(">qi", announce)
    assert (conn_id, action) == (CONN_ID, 1)
    assert announce[16:36] == request.torrent.info_hash
    assert announce[98] == 2
    assert announce.endswith(b"/announce?a=b")


@pytest.mark.asyncio
async def test_connection_is_reused():
    async with running() as (server, transport, url):
        tracker = UDPTracker(url, transport)
        await asyncio.wait_for(tracker.announce(make_request()), 5)
        await asyncio.wait_for(tracker.announce(make_request()), 5)
    actions = [struct.unpack_from(">qi", p)[1] for p in server.packets]
    assert actions == [0, 1, 1]


@pytest.mark.asyncio
async def test_tracker_error_message():
    async with running("error") as (_, transport, url):
        tracker = UDPTracker(url, transport)
        with pytest.raises(TrackerError) as info:
            await asyncio.wait_for(tracker.announce(make_request()), 5)
    assert info.value.failure_reason == "denied"
    assert info.value.retry_in == 120.0


@pytest.mark.asyncio
async def test_undecodable_error_message():
    async with running("garbage") as (_, transport, url):
        tracker = UDPTracker(url, transport)
        with pytest.raises(DecodeError):
            await asyncio.wait_for(tracker.announce(make_request()), 5)


@pytest.mark.asyncio
async def test_invalid_announce_action():
    async with running("bad_action") as (_, transport, url):
        tracker = UDPTracker(url, transport)
        with pytest.raises(DecodeError):
            await asyncio.wait_for(tracker.announce(make_request()), 5)


@pytest.mark.asyncio
async def test_blocked_tracker():
    async with running(blocklist=BlockAll()) as (server, transport, url):
        tracker = UDPTracker(url, transport)
        with pytest.raises(ConnectionError, match="blocked"):
            await asyncio.wait_for(tracker.announce(make_request()), 5)
    assert server.packets == []


@pytest.mark.asyncio
async def test_announce_after_close():
    async with running() as (_, transport, url):
        tracker = UDPTracker(url, transport)
        transport.close()
        with pytest.raises(ConnectionError):
            await tracker.announce(make_request())


@pytest.mark.asyncio
async def test_close_fails_pending_announce():
    async with running("silent") as (server, transport, url):
        tracker = UDPTracker(url, transport)
        task = asyncio.ensure_future(tracker.announce(make_request()))
        for _ in range(100):
            if len(server.packets) >= 2:
                break
            await asyncio.sleep(0.01)
        transport.close()
        with pytest.raises(ConnectionError):
            await asyncio.wait_for(task, 5)
    assert len(server.packets) == 2


@pytest.mark.asyncio
async def test_announce_requires_start():
    transport = Transport()
    with pytest.raises(RuntimeError):
        await transport.announce("127.0.0.1:1", make_request())


def test_tracker_url_and_dest():
    tracker = UDPTracker("udp://tracker.example.com:6969", Transport())
    assert tracker.url() == "udp://tracker.example.com:6969"
    assert tracker.dest == "tracker.example.com:6969"
    assert tracker.url_data == "/"