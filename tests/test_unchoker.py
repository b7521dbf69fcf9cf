from dataclasses import dataclass

from rainkit.unchoker import Unchoker


@dataclass(eq=False)
class FakePeer:
    interested: bool = False
    choking: bool = False
    optimistic: bool = False
    download_speed: int = 0
    upload_speed: int = 0

    def choke(self):
        self.choking = True

    def unchoke(self):
        self.choking = False


def state(peers):
    return [(p.interested, p.choking, p.optimistic, p.download_speed) for p in peers]


def test_tick_unchoke():
    peers = [
        FakePeer(interested=True, choking=True),
        FakePeer(interested=True, choking=True, download_speed=2),
        FakePeer(interested=True, choking=True, download_speed=4),
        FakePeer(choking=True),
    ]
    u = Unchoker(2, 1)

    # Fastest two downloading peers are unchoked.
    u.round = 1
    u.tick_unchoke(list(peers), False)
    assert state(peers) == [
        (True, True, False, 0),
        (True, False, False, 2),
        (True, False, False, 4),
        (False, True, False, 0),
    ]

    # Nothing changed.
    u.round = 1
    u.tick_unchoke(list(peers), False)
    assert state(peers) == [
        (True, True, False, 0),
        (True, False, False, 2),
        (True, False, False, 4),
        (False, True, False, 0),
    ]

    # First choked peer is unchoked optimistically.
    u.round = 0
    u.tick_unchoke(list(peers), False)
    assert state(peers) == [
        (True, False, True, 0),
        (True, False, False, 2),
        (True, False, False, 4),
        (False, True, False, 0),
    ]

    # Optimistically unchoked peer started downloading.
    peers[0].download_speed = 3
    u.round = 1
    u.tick_unchoke(list(peers), False)
    assert state(peers) == [
        (True, False, True, 3),
        (True, False, False, 2),
        (True, False, False, 4),
        (False, True, False, 0),
    ]

    u.round = 0
    u.tick_unchoke(list(peers), False)
    assert state(peers) == [
        (True, False, False, 3),
        (True, False, True, 2),
        (True, False, False, 4),
        (False, True, False, 0),
    ]


def test_round_advances_modulo_three():
    u = Unchoker(1, 1)
    for _ in range(4):
        u.tick_unchoke([], False)
    assert u.round == 1


def test_completed_torrent_sorts_by_upload_speed():
    slow = FakePeer(interested=True, choking=True, upload_speed=1, download_speed=9)
    fast = FakePeer(interested=True, choking=True, upload_speed=8)
    u = Unchoker(1, 0)
    u.round = 1
    u.tick_unchoke([slow, fast], True)
    assert (fast.choking, slow.choking) == (False, True)


def test_fast_unchoke_fills_free_slots():
    u = Unchoker(1, 1)
    first = FakePeer(interested=True, choking=True)
    second = FakePeer(interested=True, choking=True)
    third = FakePeer(interested=True, choking=True)
    u.fast_unchoke(first)
    u.fast_unchoke(second)
    u.fast_unchoke(third)
    assert state([first, second, third]) == [
        (True, False, False, 0),
        (True, False, True, 0),
        (True, True, False, 0),
    ]


def test_fast_unchoke_ignores_uninterested():
    u = Unchoker(1, 1)
    peer = FakePeer(choking=True)
    u.fast_unchoke(peer)
    assert peer.choking is True


def test_handle_disconnect_frees_slot():
    u = Unchoker(1, 0)
    first = FakePeer(interested=True, choking=True)
    u.fast_unchoke(first)
    u.handle_disconnect(first)
    second = FakePeer(interested=True, choking=True)
    u.fast_unchoke(second)
    assert second.choking is False