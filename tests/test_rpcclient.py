import base64
import io
import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from rainkit.rpcclient import AddTorrentOptions, Client, RPCError


class _Handler(BaseHTTPRequestHandler):
    def do_POST(self):
        length = int(self.headers["Content-Length"])
        body = json.loads(self.rfile.read(length))
        self.server.requests.append(body)
        kind, value = self.server.replies.get(body["method"], ("result", {}))
        reply = {"jsonrpc": "2.0", "id": body["id"], kind: value}
        data = json.dumps(reply).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    srv.requests = []
    srv.replies = {}
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


@pytest.fixture
def client(server):
    return Client(f"http://127.0.0.1:{server.server_address[1]}/", timeout=5)


def test_server_version(server, client):
    server.replies["Session.Version"] = ("result", "1.2.3")
    assert client.server_version() == "1.2.3"
    assert server.requests[0]["method"] == "Session.Version"
    assert server.requests[0]["jsonrpc"] == "2.0"


def test_list_torrents(server, client):
    torrents = [{"ID": "a"}, {"ID": "b"}]
    server.replies["Session.ListTorrents"] = ("result", {"Torrents": torrents})
    assert client.list_torrents() == torrents


def test_add_torrent_sends_base64_and_options(server, client):
    content = b"d4:infoe"
    server.replies["Session.AddTorrent"] = ("result", {"Torrent": {"ID": "abc"}})
    torrent = client.add_torrent(io.BytesIO(content), AddTorrentOptions(id="abc", stopped=True))
    assert torrent == {"ID": "abc"}
    params = server.requests[0]["params"]
    assert base64.b64decode(params["Torrent"]) == content
    assert params["AddTorrentOptions"]["ID"] == "abc"
    assert params["AddTorrentOptions"]["Stopped"] is True
    assert params["AddTorrentOptions"]["StopAfterDownload"] is False


def test_add_uri_default_options(server, client):
    uri = "magnet:?xt=urn:btih:0000000000000000000000000000000000000000"
    server.replies["Session.AddURI"] = ("result", {"Torrent": {"ID": "xyz"}})
    torrent = client.add_uri(uri)
    assert torrent == {"ID": "xyz"}
    params = server.requests[0]["params"]
    assert params["URI"] == uri
    assert params["AddTorrentOptions"]["ID"] == ""


def test_get_torrent_decodes(server, client):
    content = b"\x00\x01torrent bytes"
    server.replies["Session.GetTorrent"] = (
        "result",
        {"Torrent": base64.b64encode(content).decode()},
    )
    assert client.get_torrent("abc") == content
    assert server.requests[0]["params"] == {"ID": "abc"}


def test_move_torrent_params(server, client):
    result = client.move_torrent("abc", "other.example.com:7246")
    assert result is None
    assert server.requests[0]["method"] == "Session.MoveTorrent"
    assert server.requests[0]["params"] == {"ID": "abc", "Target": "other.example.com:7246"}


def test_move_torrent_error(server, client):
    server.replies["Session.MoveTorrent"] = ("error", {"code": -32000, "message": "cannot move"})
    with pytest.raises(RPCError, match="cannot move") as info:
        client.move_torrent("abc", "other.example.com:7246")
    assert info.value.code == -32000


def test_get_magnet(server, client):
    server.replies["Session.GetMagnet"] = ("result", {"Magnet": "magnet:?xt=urn:btih:aa"})
    assert client.get_magnet("abc") == "magnet:?xt=urn:btih:aa"


def test_error_reply_raises(server, client):
    server.replies["Session.StartTorrent"] = ("error", {"code": -32000, "message": "torrent not found"})
    with pytest.raises(RPCError, match="torrent not found") as info:
        client.start_torrent("missing")
    assert info.value.code == -32000


def test_request_ids_increase(server, client):
    server.replies["Session.Version"] = ("result", "1.0.0")
    server.replies["Session.GetMagnet"] = ("result", {"Magnet": "magnet:?xt=urn:btih:bb"})
    assert client.server_version() == "1.0.0"
    assert client.get_magnet("abc") == "magnet:?xt=urn:btih:bb"
    ids = [req["id"] for req in server.requests]
    assert ids[1] > ids[0]
    assert [req["method"] for req in server.requests] == [
        "Session.Version",
        "Session.GetMagnet",
    ]


def test_closed_client_raises(client):
    client.close()
    with pytest.raises(ConnectionError):
        client.server_version()


def test_set_timeout(client):
    client.set_timeout(2.5)
    assert client.timeout == 2.5