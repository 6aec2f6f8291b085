"""Logging lines prefixed with time, host, program and level."""

from __future__ import annotations

import os
import socket
import sys
import threading
import time
from enum import IntEnum
from typing import TextIO


class Level(IntEnum):
    INFO = 0
    FAIL = 1
    ERROR = 2
    WARNING = 3
    DEBUG = 4
    DIAG = 5


LABELS = {
    Level.INFO: "[info]: ",
    Level.FAIL: "[fail]: ",
    Level.ERROR: "[error]: ",
    Level.WARNING: "[warning]: ",
    Level.DEBUG: "[debug]: ",
    Level.DIAG: "[diagnostic]: ",
}

suppress = False
_lock = threading.Lock()


def get_hostname() -> str:
    """Name of this host, or ``localhost`` if it cannot be read."""
    try:
        name = socket.gethostname()
    except (OSError, UnicodeError):
        return "localhost"
    return name or "localhost"


def get_program() -> str:
    """Program name followed by the process id in brackets."""
    name = sys.argv[0] if sys.argv and sys.argv[0] else "unknown"
    return f"{name}[{os.getpid()}]"


HOSTNAME = get_hostname()
PROGRAM = get_program()


def header(level: Level, when: float | None = None) -> str:
    """The prefix written before every log message."""
    stamp = time.strftime(
        "%b %d %H:%M:%S ", time.localtime(time.time() if when is None else when)
    )
    return f"{stamp}{HOSTNAME} {PROGRAM} {LABELS[Level(level)]}"


def log(level: Level, message: str, stream: TextIO | None = None) -> None:
    """Write one prefixed line to ``stream`` (standard error by default)."""
    if suppress:
        return
    target = sys.stderr if stream is None else stream
    with _lock:
        target.write(f"{header(level)}{message}\n")
        target.flush()