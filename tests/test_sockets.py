import os
import socket
import stat
import threading
import time

import pytest

from fcgiworks import log as fcgi_log
from fcgiworks.sockets import Socket, SocketGroup


@pytest.fixture(autouse=True)
def quiet_logs():
    fcgi_log.suppress = True
    yield
    fcgi_log.suppress = False


@pytest.fixture
def group():
    g = SocketGroup()
    yield g
    g.close()


@pytest.fixture
def unix_path(tmp_path):
    return str(tmp_path / "fcgi.sock")


def _client(path):
    client = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    client.connect(path)
    return client


def test_default_socket_is_invalid():
    s = Socket()
    assert not s.valid
    assert s.fileno() == -1
    assert s == Socket()


def test_invalid_socket_read_and_write_raise():
    s = Socket()
    with pytest.raises(ConnectionError):
        s.read(10)
    with pytest.raises(ConnectionError):
        s.write(b"data")
    s.close()
    assert not s.valid


def test_nonblocking_poll_with_nothing_returns_invalid(group):
    result = group.poll(False)
    assert not result.valid
    assert len(group) == 0


def test_listen_unix_accepts_and_reads(group, unix_path):
    group.listen_unix(unix_path)
    client = _client(unix_path)
    try:
        client.sendall(b"hello")
        got = group.poll(True)
        assert got.valid
        assert len(group) == 1
        assert got.read(100) == b"hello"
        assert got.read(100) == b""
    finally:
        client.close()


def test_write_reaches_peer(group, unix_path):
    group.listen_unix(unix_path)
    client = _client(unix_path)
    try:
        client.sendall(b"x")
        got = group.poll(True)
        got.read(1)
        assert got.write(data=b"reply") == 5
        assert client.recv(5) == b"reply"
    finally:
        client.close()


def test_same_socket_returned_for_same_connection(group, unix_path):
    group.listen_unix(unix_path)
    client = _client(unix_path)
    try:
        client.sendall(b"a")
        first = group.poll(True)
        first.read(10)
        client.sendall(b"b")
        second = group.poll(True)
        assert first == second
        assert hash(first) == hash(second)
        assert second.read(10) == b"b"
    finally:
        client.close()


def test_peer_hangup_closes_socket(group, unix_path):
    group.listen_unix(unix_path)
    client = _client(unix_path)
    client.sendall(b"bye")
    got = group.poll(True)
    assert got.read(10) == b"bye"
    client.close()
    again = group.poll(True)
    assert again == got
    with pytest.raises(ConnectionError):
        again.read(10)
    assert not got.valid
    assert len(group) == 0


def test_listen_unix_permissions(group, unix_path):
    group.listen_unix(unix_path, 0o600)
    assert stat.S_IMODE(os.stat(unix_path).st_mode) == 0o600


def test_close_removes_socket_file(unix_path):
    g = SocketGroup()
    g.listen_unix(unix_path)
    assert os.path.exists(unix_path)
    client = _client(unix_path)
    try:
        client.sendall(b"q")
        got = g.poll(True)
        assert got.valid
        assert len(g) == 1
        g.close()
        assert not got.valid
        assert len(g) == 0
        assert not os.path.exists(unix_path)
    finally:
        client.close()


def test_listen_unix_bad_directory_raises(group, tmp_path):
    with pytest.raises(OSError):
        group.listen_unix(str(tmp_path / "missing" / "fcgi.sock"))


def test_wake_ends_blocking_poll(group):
    group.wake()
    result = group.poll(True)
    assert not result.valid


def test_wake_from_other_thread(group):
    def later():
        time.sleep(0.05)
        group.wake()

    thread = threading.Thread(target=later)
    thread.start()
    result = group.poll(True)
    thread.join()
    assert not result.valid


def test_refusing_connections(group, unix_path):
    group.listen_unix(unix_path)
    group.accept(False)
    client = _client(unix_path)
    try:
        client.sendall(b"wait")
        assert not group.poll(False).valid
        assert len(group) == 0
        group.accept(True)
        got = group.poll(True)
        assert got.valid
        assert got.read(10) == b"wait"
    finally:
        client.close()


def test_connect_unix_round_trip(tmp_path):
    path = str(tmp_path / "peer.sock")
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(path)
    server.listen(1)
    with SocketGroup() as g:
        s = g.connect_unix(path)
        assert s.valid
        assert len(g) == 1
        conn, _ = server.accept()
        try:
            assert s.write(b"ping") == 4
            assert conn.recv(4) == b"ping"
            conn.sendall(b"pong")
            got = g.poll(True)
            assert got == s
            assert got.read(10) == b"pong"
        finally:
            conn.close()
    server.close()


def test_connect_unix_missing_gives_invalid(group, tmp_path):
    s = group.connect_unix(str(tmp_path / "nothing.sock"))
    assert not s.valid
    assert len(group) == 0


def test_connect_tcp_round_trip(group):
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    try:
        s = group.connect_tcp("127.0.0.1", str(port))
        assert s.valid
        conn, _ = server.accept()
        try:
            assert s.write(b"ping") == 4
            assert conn.recv(4) == b"ping"
            conn.sendall(b"pong")
            got = group.poll(True)
            assert got == s
            assert got.read(10) == b"pong"
        finally:
            conn.close()
    finally:
        server.close()


def test_connect_tcp_refused_gives_invalid(group):
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    s = group.connect_tcp("127.0.0.1", str(port))
    assert not s.valid


def test_listen_tcp_accepts(group):
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    group.reuse_address(True)
    group.listen_tcp("127.0.0.1", str(port))
    client = socket.create_connection(("127.0.0.1", port))
    try:
        client.sendall(b"tcp")
        got = group.poll(True)
        assert got.read(10) == b"tcp"
        assert len(group) == 1
    finally:
        client.close()


def test_listen_tcp_bad_service_raises(group):
    with pytest.raises(OSError):
        group.listen_tcp("127.0.0.1", "no-such-service-name")


def test_sockets_sort_consistently(group, unix_path):
    group.listen_unix(unix_path)
    clients = [_client(unix_path) for _ in range(2)]
    try:
        found = []
        for c in clients:
            c.sendall(b"z")
            got = group.poll(True)
            got.read(10)
            found.append(got)
        assert len(group) == 2
        ordered = sorted(found)
        assert sorted(reversed(found)) == ordered
        assert (ordered[0] < ordered[1]) and not (ordered[1] < ordered[0])
    finally:
        for c in clients:
            c.close()