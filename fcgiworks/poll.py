"""Readiness polling over a set of sockets."""

from __future__ import annotations

import select
from dataclasses import dataclass

POLL_IN = select.POLLIN
POLL_ERR = select.POLLERR
POLL_HUP = select.POLLHUP
POLL_RDHUP = getattr(select, "POLLRDHUP", 0)

_WATCHED = POLL_IN | POLL_ERR | POLL_HUP | POLL_RDHUP


def _fileno(sock) -> int:
    return sock if isinstance(sock, int) else sock.fileno()


@dataclass(frozen=True)
class PollResult:
    """One socket that became ready, with the events reported for it."""

    socket: int
    events: int

    @property
    def readable(self) -> bool:
        return bool(self.events & POLL_IN)

    @property
    def error(self) -> bool:
        return bool(self.events & POLL_ERR)

    @property
    def hangup(self) -> bool:
        return bool(self.events & POLL_HUP)

    @property
    def peer_closed(self) -> bool:
        return bool(POLL_RDHUP and self.events & POLL_RDHUP)


class Poll:
    """Watches sockets for input, errors and hang-ups."""

    def __init__(self):
        self._poll = select.poll()
        self._fds: set[int] = set()

    def add(self, sock) -> bool:
        """Start watching ``sock``; False if it is already watched."""
        fd = _fileno(sock)
        if fd in self._fds:
            return False
        self._poll.register(fd, _WATCHED)
        self._fds.add(fd)
        return True

    def remove(self, sock) -> bool:
        """Stop watching ``sock``; False if it was not watched."""
        fd = _fileno(sock)
        if fd not in self._fds:
            return False
        self._poll.unregister(fd)
        self._fds.discard(fd)
        return True

    def poll(self, timeout: int = -1) -> PollResult | None:
        """Wait up to ``timeout`` ms (negative blocks) for one ready socket."""
        events = self._poll.poll(None if timeout < 0 else timeout)
        if not events:
            return None
        fd, mask = events[0]
        return PollResult(fd, mask)

    def close(self) -> None:
        """Stop watching every socket."""
        for fd in list(self._fds):
            self._poll.unregister(fd)
        self._fds.clear()

    def __contains__(self, sock) -> bool:
        return _fileno(sock) in self._fds

    def __len__(self) -> int:
        return len(self._fds)

    def __enter__(self) -> "Poll":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()