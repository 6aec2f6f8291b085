"""Connections to and from the web server, and the group that polls them."""

from __future__ import annotations

import errno
import grp
import os
import pwd
import socket
import threading
from dataclasses import dataclass

from .log import Level, log
from .poll import Poll

DEFAULT_PERMISSIONS = 0xFFFFFFFF
_BACKLOG = 100
_SEND_FLAGS = getattr(socket, "MSG_NOSIGNAL", 0)


@dataclass(eq=False)
class _Data:
    sock: socket.socket
    fd: int
    group: "SocketGroup"
    valid: bool = True
    closing: bool = False


class Socket:
    """One connection held by a :class:`SocketGroup`.

    Copies of a socket share its state, so closing one closes them all.
    ``Socket()`` builds a socket that was never valid.
    """

    __slots__ = ("_data",)

    def __init__(self):
        self._data: _Data | None = None

    @classmethod
    def _wrap(cls, data: _Data) -> "Socket":
        result = cls()
        result._data = data
        return result

    @property
    def valid(self) -> bool:
        """True while the connection is open for reading and writing."""
        return self._data is not None and self._data.valid

    @property
    def closing(self) -> bool:
        """True once the other end has announced it is hanging up."""
        return self._data is not None and self._data.closing

    def fileno(self) -> int:
        """The operating-system descriptor, or -1 if the socket is invalid."""
        return self._data.fd if self.valid else -1

    def read(self, size: int = 4096) -> bytes:
        """Read up to ``size`` bytes that are waiting.

        Returns an empty byte string when nothing is waiting. Raises
        ConnectionError once the socket is no longer valid; when the peer
        has hung up and everything it sent has been read, the socket is
        closed and ConnectionError raised.
        """
        state = self._data
        if state is None or not state.valid:
            raise ConnectionError("socket is not valid")
        if size <= 0:
            return b""
        try:
            chunk = state.sock.recv(size)
        except (BlockingIOError, InterruptedError):
            return b""
        except OSError as exc:
            self.close()
            raise ConnectionError(f"error reading from socket: {exc}") from exc
        if not chunk:
            self.close()
            raise ConnectionError("connection closed by peer")
        return chunk

    def write(self, data) -> int:
        """Write as much of ``data`` as the socket takes; return the count.

        Raises ConnectionError when nothing more can be written. A hang-up
        by the peer leaves the socket open so remaining input can be read;
        any other failure closes it.
        """
        state = self._data
        if state is None or not state.valid:
            raise ConnectionError("socket is not valid")
        try:
            return state.sock.send(bytes(data), _SEND_FLAGS)
        except (BlockingIOError, InterruptedError):
            return 0
        except (BrokenPipeError, ConnectionResetError) as exc:
            state.closing = True
            raise ConnectionError("peer has hung up") from exc
        except OSError as exc:
            self.close()
            raise ConnectionError(f"error writing to socket: {exc}") from exc

    def close(self) -> None:
        """Close the connection and drop it from its group; no-op if invalid."""
        state = self._data
        if state is None or not state.valid:
            return
        state.valid = False
        state.group._forget(state)
        try:
            state.sock.close()
        except OSError:
            pass

    def _key(self) -> int:
        return 0 if self._data is None else id(self._data)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Socket):
            return NotImplemented
        return self._data is other._data

    def __lt__(self, other: "Socket") -> bool:
        if not isinstance(other, Socket):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        state = "valid" if self.valid else "invalid"
        return f"<Socket fd={self.fileno()} {state}>"


class SocketGroup:
    """Listens for connections and polls every connection it holds.

    Only :meth:`wake` may be called from other threads.
    """

    def __init__(self):
        self._listeners: dict[int, socket.socket] = {}
        self._poll = Poll()
        self._wake_read, self._wake_write = socket.socketpair()
        self._wake_read.setblocking(False)
        self._wake_write.setblocking(False)
        self._poll.add(self._wake_read)
        self._waking = False
        self._waking_lock = threading.Lock()
        self._reuse = False
        self._accepting = True
        self._refresh_listeners = False
        self._sockets: dict[int, Socket] = {}
        self._filenames: list[str] = []
        self._closed = False

    # Listening

    def _add_listener(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        fd = sock.fileno()
        self._listeners[fd] = sock
        if self._accepting:
            self._poll.add(fd)

    def listen_default(self) -> None:
        """Listen on the socket a web server hands over as standard input."""
        try:
            sock = socket.socket(fileno=os.dup(0))
        except OSError as exc:
            raise OSError("standard input is not a socket") from exc
        try:
            listening = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ACCEPTCONN)
        except OSError:
            listening = 0
        if not listening:
            sock.close()
            raise OSError(errno.ENOTSOCK, "standard input is not a listening socket")
        self._add_listener(sock)

    def listen_unix(
        self,
        name: str,
        permissions: int = DEFAULT_PERMISSIONS,
        owner: str | None = None,
        group: str | None = None,
    ) -> None:
        """Listen on a named socket at the path ``name``.

        ``permissions`` is applied unless left at its default; ``owner``
        and ``group`` are user and group names to hand the file to.
        """
        path = os.fspath(name)
        if os.path.exists(path):
            os.unlink(path)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(path)
            if permissions != DEFAULT_PERMISSIONS:
                os.chmod(path, permissions)
            if owner is not None or group is not None:
                uid = pwd.getpwnam(owner).pw_uid if owner is not None else -1
                gid = grp.getgrnam(group).gr_gid if group is not None else -1
                os.chown(path, uid, gid)
            sock.listen(_BACKLOG)
        except (OSError, KeyError) as exc:
            sock.close()
            if os.path.exists(path):
                os.unlink(path)
            log(Level.ERROR, f"Unable to listen on {path}: {exc}")
            if isinstance(exc, KeyError):
                raise OSError(f"unknown owner or group: {exc}") from exc
            raise
        self._filenames.append(path)
        self._add_listener(sock)

    def listen_tcp(self, interface: str | None, service) -> None:
        """Listen on ``service`` (a port or service name) at ``interface``."""
        infos = socket.getaddrinfo(
            interface,
            str(service),
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
        last_error: OSError | None = None
        for family, kind, proto, _, address in infos:
            sock = socket.socket(family, kind, proto)
            try:
                if self._reuse:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(address)
                sock.listen(_BACKLOG)
            except OSError as exc:
                sock.close()
                last_error = exc
                continue
            self._add_listener(sock)
            return
        log(Level.ERROR, f"Unable to listen on {interface}:{service}")
        raise last_error or OSError(f"no address to listen on for {service}")

    # Connecting

    def _register(self, sock: socket.socket) -> Socket:
        sock.setblocking(False)
        state = _Data(sock=sock, fd=sock.fileno(), group=self)
        result = Socket._wrap(state)
        self._sockets[state.fd] = result
        self._poll.add(state.fd)
        return result

    def connect_unix(self, name: str) -> Socket:
        """Connect to a named socket; an invalid socket if that fails."""
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(os.fspath(name))
        except OSError as exc:
            sock.close()
            log(Level.ERROR, f"Unable to connect to {name}: {exc}")
            return Socket()
        return self._register(sock)

    def connect_tcp(self, host: str, service) -> Socket:
        """Connect to ``host`` on ``service``; an invalid socket if that fails."""
        try:
            infos = socket.getaddrinfo(
                host, str(service), socket.AF_UNSPEC, socket.SOCK_STREAM
            )
        except OSError as exc:
            log(Level.ERROR, f"Unable to resolve {host}:{service}: {exc}")
            return Socket()
        for family, kind, proto, _, address in infos:
            sock = socket.socket(family, kind, proto)
            try:
                sock.connect(address)
            except OSError:
                sock.close()
                continue
            return self._register(sock)
        log(Level.ERROR, f"Unable to connect to {host}:{service}")
        return Socket()

    # Polling

    def _accept_from(self, listener: socket.socket) -> None:
        try:
            conn, _ = listener.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            log(Level.ERROR, f"Unable to accept connection: {exc}")
            return
        self._register(conn)

    def _drain_wake(self) -> None:
        with self._waking_lock:
            try:
                while self._wake_read.recv(1024):
                    pass
            except (BlockingIOError, InterruptedError):
                pass
            self._waking = False

    def poll(self, block: bool) -> Socket:
        """Wait for incoming data and return the socket that has it.

        New connections are accepted and dead sockets torn down along the
        way. An invalid socket comes back when nothing waits and ``block``
        is false, or when the wait was ended by :meth:`wake`.
        """
        while True:
            if self._refresh_listeners:
                self._refresh_listeners = False
                for fd in self._listeners:
                    if self._accepting:
                        self._poll.add(fd)
                    else:
                        self._poll.remove(fd)

            result = self._poll.poll(-1 if block else 0)
            if result is None:
                return Socket()

            fd = result.socket
            if fd == self._wake_read.fileno():
                self._drain_wake()
                return Socket()

            listener = self._listeners.get(fd)
            if listener is not None:
                if result.readable:
                    self._accept_from(listener)
                continue

            found = self._sockets.get(fd)
            if found is None:
                self._poll.remove(fd)
                continue
            if result.readable:
                if result.peer_closed:
                    found._data.closing = True
                return found
            if result.error or result.hangup or result.peer_closed:
                found.close()
                continue

    def wake(self) -> None:
        """End a blocking :meth:`poll`; safe from any thread."""
        with self._waking_lock:
            if self._waking or self._closed:
                return
            self._waking = True
            try:
                self._wake_write.send(b"W")
            except OSError as exc:
                log(Level.ERROR, f"Unable to wake socket group: {exc}")

    def accept(self, status: bool) -> None:
        """Accept new connections when ``status`` is true, refuse them otherwise."""
        self._accepting = bool(status)
        self._refresh_listeners = True

    def reuse_address(self, value: bool) -> None:
        """Set the reuse-address option on TCP sockets listened on later."""
        self._reuse = bool(value)

    def _forget(self, state: _Data) -> None:
        held = self._sockets.get(state.fd)
        if held is not None and held._data is state:
            del self._sockets[state.fd]
            self._poll.remove(state.fd)

    def close(self) -> None:
        """Close every connection and listener and remove socket files."""
        if self._closed:
            return
        self._closed = True
        for held in list(self._sockets.values()):
            held.close()
        for listener in self._listeners.values():
            listener.close()
        self._listeners.clear()
        self._poll.close()
        self._wake_read.close()
        self._wake_write.close()
        for path in self._filenames:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
        self._filenames.clear()

    def __len__(self) -> int:
        return len(self._sockets)

    def __enter__(self) -> "SocketGroup":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()