# rainkit

Parts of a BitTorrent client for asyncio programs.

- **Tracker announces** (`rainkit.tracker`, `rainkit.httptracker`, `rainkit.udptracker`, `rainkit.trackermanager`)
  - `HTTPTracker` announces to HTTP and HTTPS trackers.
  - `UDPTracker` announces to UDP trackers. All UDP trackers share one `Transport`.
  - `Tier` shuffles a list of trackers and announces to one of them at a time. After a failed announce it moves to the next tracker.
  - `TrackerManager.get` returns the right tracker for an `http`, `https` or `udp` URL. All HTTP trackers it returns share one `aiohttp` session, and all UDP trackers share one `Transport`.
- **Wire formats** (`rainkit.tracker`, `rainkit.udpmessages`)
  - `CompactPeer`, `decode_peers_compact` and `parse_dht_peers` read the 6-byte compact peer format. They handle IPv4 only.
  - `encode_connect_request`, `encode_announce_request`, `decode_header`, `decode_connect_response` and `decode_announce_response` build and read UDP tracker packets.
  - `UDPBackOff` gives the retry intervals for UDP requests.
- **Unchoking** (`rainkit.unchoker`)
  - `Unchoker` decides which interested peers to unchoke. It ranks them by download speed, or by upload speed once the torrent is complete.
  - Every third round it also unchokes a peer at random (an optimistic unchoke).
  - `fast_unchoke` unchokes a peer immediately when a slot is free.
- **Webseeds** (`rainkit.jobs`, `rainkit.urldownloader`, `rainkit.webseed`)
  - `create_jobs` turns a range of `Piece`s into one `DownloadJob` (an HTTP range request) per file.
  - `URLDownloader.run` is an async generator. It downloads those ranges and yields one `PieceResult` per piece, or a single result that carries the error.
  - `WebseedSource` and `new_list` track the webseed URLs of a torrent.
- **Remote sessions** (`rainkit.rpcclient`)
  - `Client` is a blocking JSON-RPC 2.0 client for a running torrent session.
  - It takes an HTTP address and can be used as a context manager.
  - Errors returned by the server are raised as `RPCError`.
- **Settings** (`rainkit.config`)
  - `Config` is a dataclass of session defaults. Durations are in seconds and sizes are in bytes.
  - `InputError` and `AnnounceError` are the error types for a session.
  - `set_open_files_limit` sets both the soft and the hard limit on open files. It does nothing on Windows.

## Install

```
pip install rainkit
```

With the test dependencies:

```
pip install "rainkit[test]"
```

## Announcing to a tracker

```python
import asyncio

from rainkit.tracker import AnnounceRequest, Event, TrackerTorrent
from rainkit.trackermanager import TrackerManager


async def main():
    async with TrackerManager() as manager:
        trk = manager.get("http://tracker.example.com/announce", 10.0, "Rain/1.0", 2 << 20)
        torrent = TrackerTorrent(info_hash=bytes(20), peer_id=bytes(20), port=6881, bytes_left=1)
        request = AnnounceRequest(torrent=torrent, event=Event.STARTED, num_want=50)
        response = await trk.announce(request)
        print(response.interval, response.peers)


asyncio.run(main())
```

Use `TrackerManager` as an async context manager. That opens the UDP socket that UDP trackers need, and closes it together with the HTTP session at the end.

Each peer in `AnnounceResponse.peers` is a `(host, port)` tuple. Intervals are given in seconds.

A failed announce raises an exception:

- `TrackerError` when the tracker reports a failure reason. Its `retry_in` is in seconds.
- `DecodeError` when the response cannot be decoded.
- `StatusError` when an HTTP tracker answers with a status other than 200 and a body that cannot be decoded.

## Talking to a session

```python
from rainkit.rpcclient import AddTorrentOptions, Client

with Client("http://127.0.0.1:7246") as client:
    print(client.server_version())
    for torrent in client.list_torrents():
        print(torrent)
    client.add_uri("magnet:?xt=urn:btih:...", AddTorrentOptions(stopped=True))
```

## What this package does not do

rainkit supplies separate components. It is not a complete client. It has:

- no session that runs torrents;
- no peer wire protocol;
- no DHT node;
- no reading of `.torrent` files or magnet links;
- no disk storage or resume database;
- no RPC server;
- no command-line program.

`Config` holds settings for such a session, but nothing in the package reads most of them. `Client` needs a session server that already runs elsewhere.

## Running the tests

```
pytest
```