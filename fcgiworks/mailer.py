"""Background delivery of e-mail through an SMTP server."""

from __future__ import annotations

import select
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto

from .log import Level, log
from .sockets import Socket, SocketGroup

_READ_SIZE = 4096
_WRITE_TIMEOUT = 30.0


@dataclass(frozen=True)
class Email:
    """One message: the envelope sender and recipient and the raw body."""

    sender: str
    recipient: str
    body: bytes = field(default=b"")

    def __post_init__(self):
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))
        else:
            object.__setattr__(self, "body", bytes(self.body))


class _State(Enum):
    DISCONNECTED = auto()
    CONNECTED = auto()
    EHLO = auto()
    EIGHTBIT = auto()
    MAIL = auto()
    RCPT = auto()
    DATA = auto()
    DUMP = auto()
    QUIT = auto()
    ERROR = auto()


class Mailer:
    """Sends queued e-mails one after another from a background thread.

    Call :meth:`init` once, then :meth:`start`. Queue messages with
    :meth:`queue`. Finish with :meth:`stop` (deliver everything queued) or
    :meth:`terminate` (quit at once), then :meth:`join`.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._queue: deque[Email] = deque()
        self._group = SocketGroup()
        self._socket = Socket()
        self._buffer = bytearray()
        self._email: Email | None = None
        self._state = _State.DISCONNECTED
        self._stop = False
        self._terminate = False
        self._thread: threading.Thread | None = None
        self._initialized = False
        self._host = ""
        self._origin = ""
        self._port = ""
        self._retry = 0

    def init(self, host, origin, port=25, retry_interval=30) -> None:
        """Set the server, the name we greet it with, its port and the retry delay.

        Only the first call has any effect.
        """
        if self._initialized:
            return
        self._host = str(host)
        self._origin = str(origin)
        self._port = str(port)
        self._retry = retry_interval
        self._initialized = True

    def queue(self, email: Email) -> None:
        """Queue ``email`` for delivery."""
        with self._cond:
            self._queue.append(email)
            self._group.wake()

    def start(self) -> None:
        """Start the delivery thread unless it is already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        with self._cond:
            self._stop = False
            self._terminate = False
        self._thread = threading.Thread(
            target=self._handler, name="mailer", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Ask the thread to finish once every queued e-mail is delivered."""
        with self._cond:
            self._stop = True
            self._group.wake()
            self._cond.notify_all()

    def terminate(self) -> None:
        """Ask the thread to quit without waiting for queued e-mails."""
        with self._cond:
            self._terminate = True
            self._group.wake()
            self._cond.notify_all()

    def join(self) -> None:
        """Wait until the delivery thread has finished."""
        if self._thread is not None:
            self._thread.join()

    # Delivery thread

    def _should_exit(self) -> bool:
        return self._terminate or (
            self._stop and not self._queue and self._email is None
        )

    def _handler(self) -> None:
        with self._cond:
            while not self._should_exit():
                if self._state is _State.ERROR:
                    self._cond.wait(self._retry)
                    self._state = _State.DISCONNECTED
                    if self._should_exit():
                        break

                if self._email is None and self._queue:
                    self._email = self._queue.popleft()

                self._cond.release()
                try:
                    self._step()
                finally:
                    self._cond.acquire()
        self._socket.close()

    def _step(self) -> None:
        if self._email is not None and not self._socket.valid:
            self._buffer.clear()
            self._socket = self._group.connect_tcp(self._host, self._port)
            if not self._socket.valid:
                log(Level.ERROR, "Error connecting to SMTP server.")
                self._state = _State.ERROR
                return
            self._state = _State.CONNECTED

        ready = self._group.poll(True)
        if not ready.valid or ready != self._socket:
            return
        try:
            chunk = self._socket.read(_READ_SIZE)
        except ConnectionError:
            return
        self._buffer += chunk

        while self._socket.valid and b"\n" in self._buffer:
            line, _, rest = bytes(self._buffer).partition(b"\n")
            self._buffer = bytearray(rest)
            if line.endswith(b"\r"):
                line = line[:-1]
            self._reply(line.decode("latin-1"))

    def _send(self, payload: bytes) -> bool:
        view = memoryview(payload)
        while view:
            try:
                written = self._socket.write(view)
            except ConnectionError:
                return False
            if written == 0:
                _, writable, _ = select.select(
                    [], [self._socket.fileno()], [], _WRITE_TIMEOUT
                )
                if not writable:
                    return False
                continue
            view = view[written:]
        return True

    def _fail(self, message: str | None = None) -> None:
        if message is not None:
            log(Level.ERROR, message)
        self._socket.close()
        self._state = _State.ERROR

    def _command(self, payload: bytes, next_state: _State, name: str) -> None:
        if self._send(payload):
            self._state = next_state
        else:
            self._fail(f"Error sending {name} command to SMTP server.")

    def _reply(self, line: str) -> None:
        state = self._state
        email = self._email

        if state is _State.CONNECTED:
            if line.startswith("220 "):
                self._command(
                    f"EHLO {self._origin}\n".encode("utf-8"), _State.EHLO, "EHLO"
                )
            else:
                self._fail(f"Bad reply from SMTP server after connecting: {line}")

        elif state is _State.EHLO:
            if line == "250-8BITMIME":
                self._state = _State.EIGHTBIT
            elif len(line) >= 4 and line.startswith("250"):
                if line[3] == "-":
                    return
                if line[3] == " ":
                    self._fail("SMTP server does not support 8BITMIME.")
                else:
                    self._fail(f"Bad reply from SMTP server after EHLO: {line}")
            else:
                self._fail(f"Bad reply from SMTP server after EHLO: {line}")

        elif state is _State.EIGHTBIT:
            if len(line) >= 4 and line.startswith("250"):
                if line[3] == "-":
                    return
                if line[3] == " ":
                    self._command(
                        f"MAIL FROM: <{email.sender}>\n".encode("utf-8"),
                        _State.MAIL,
                        "MAIL",
                    )
                else:
                    self._fail()
            else:
                self._fail(f"Bad reply from SMTP server after EHLO: {line}")

        elif state is _State.MAIL:
            if line.startswith("250 "):
                self._command(
                    f"RCPT TO: <{email.recipient}>\n".encode("utf-8"),
                    _State.RCPT,
                    "RCPT",
                )
            else:
                self._fail(f"Bad reply from SMTP server after MAIL: {line}")

        elif state is _State.RCPT:
            if line.startswith("250 "):
                self._command(b"DATA\n", _State.DATA, "DATA")
            else:
                self._fail(f"Bad reply from SMTP server after RCPT: {line}")

        elif state is _State.DATA:
            if line.startswith("354 "):
                if not self._send(email.body):
                    self._fail("Error sending data chunk to SMTP server.")
                elif not self._send(b"\r\n.\r\n"):
                    self._fail("Error sending CRLF.CRLF to SMTP server.")
                else:
                    self._state = _State.DUMP
            else:
                self._fail(f"Bad reply from SMTP server after RCPT: {line}")

        elif state is _State.DUMP:
            if line.startswith("250 "):
                self._email = None
                self._command(b"QUIT\n", _State.QUIT, "QUIT")
            else:
                self._fail(
                    f"Bad reply from SMTP server after data insertion: {line}"
                )

        elif state is _State.QUIT:
            if line.startswith("221 "):
                self._state = _State.DISCONNECTED
            else:
                log(Level.ERROR, f"Bad reply from SMTP server after QUIT: {line}")
                self._state = _State.ERROR
            self._socket.close()