"""Selection of peers to unchoke based on transfer speed."""

from __future__ import annotations

import random
from typing import Iterable, Protocol


class Peer(Protocol):
    """A peer of a torrent as seen by the unchoker."""

    optimistic: bool

    @property
    def choking(self) -> bool: ...

    @property
    def interested(self) -> bool: ...

    @property
    def download_speed(self) -> int: ...

    @property
    def upload_speed(self) -> int: ...

    def choke(self) -> None: ...

    def unchoke(self) -> None: ...


class Unchoker:
    """Chooses peers to unchoke; every third round is an optimistic round."""

    def __init__(
        self,
        num_unchoked: int,
        num_optimistic_unchoked: int,
        rng: random.Random | None = None,
    ) -> None:
        self.num_unchoked = num_unchoked
        self.num_optimistic_unchoked = num_optimistic_unchoked
        self.round = 0
        self._rng = rng or random.Random()
        self._unchoked: set[Peer] = set()
        self._unchoked_optimistic: set[Peer] = set()

    def handle_disconnect(self, peer: Peer) -> None:
        self._unchoked.discard(peer)
        self._unchoked_optimistic.discard(peer)

    def tick_unchoke(self, peers: Iterable[Peer], torrent_completed: bool) -> None:
        """Run one unchoke round; meant to be called every 10 seconds."""
        optimistic = self.round == 0
        candidates = [p for p in peers if p.interested]
        if torrent_completed:
            candidates.sort(key=lambda p: p.upload_speed, reverse=True)
        else:
            candidates.sort(key=lambda p: p.download_speed, reverse=True)

        pos = unchoked = 0
        while pos < len(candidates) and unchoked < self.num_unchoked:
            peer = candidates[pos]
            pos += 1
            if not optimistic and peer.optimistic:
                continue
            self._unchoke(peer)
            unchoked += 1
        rest = candidates[pos:]

        if optimistic:
            for _ in range(self.num_optimistic_unchoked):
                if not rest:
                    break
                n = self._rng.randrange(len(rest))
                self._optimistic_unchoke(rest[n])
                rest[n] = rest[-1]
                rest.pop()

        for peer in rest:
            self._choke(peer)
        self.round = (self.round + 1) % 3

    def _choke(self, peer: Peer) -> None:
        if peer.choking:
            return
        peer.choke()
        peer.optimistic = False
        self._unchoked.discard(peer)
        self._unchoked_optimistic.discard(peer)

    def _unchoke(self, peer: Peer) -> None:
        if not peer.choking:
            if peer.optimistic:
                peer.optimistic = False
                self._unchoked_optimistic.discard(peer)
                self._unchoked.add(peer)
            return
        peer.unchoke()
        self._unchoked.add(peer)
        peer.optimistic = False

    def _optimistic_unchoke(self, peer: Peer) -> None:
        if not peer.choking:
            if not peer.optimistic:
                peer.optimistic = True
                self._unchoked.discard(peer)
                self._unchoked_optimistic.add(peer)
            return
        peer.unchoke()
        self._unchoked_optimistic.add(peer)
        peer.optimistic = True

    def fast_unchoke(self, peer: Peer) -> None:
        """Unchoke an interested peer at once if there is a free slot."""
        if peer.choking and peer.interested and len(self._unchoked) < self.num_unchoked:
            self._unchoke(peer)
        if (
            peer.choking
            and peer.interested
            and len(self._unchoked_optimistic) < self.num_optimistic_unchoked
        ):
            self._optimistic_unchoke(peer)