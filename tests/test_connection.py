import io
import socket

import pytest

from tftpkit.connection import (
    Connection,
    TftpConnectionError,
    is_ipv6_address,
    sockaddr_equals,
    sockaddr_ntop,
)
from tftpkit.logger import LogLevel, Logger, LoggerConfig
from tftpkit.packet_loss import LossySocket, PacketLoss


def make_logger():
    stream = io.StringIO()
    return Logger(LoggerConfig(file=stream, default_level=LogLevel.ALL)), stream


@pytest.fixture
def server_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2)
    yield sock
    sock.close()


def test_sockaddr_ntop_ipv4():
    assert sockaddr_ntop(("127.0.0.1", 1234)) == ("127.0.0.1", 1234)


def test_sockaddr_ntop_ipv6():
    assert sockaddr_ntop(("::1", 5678, 0, 0)) == ("::1", 5678)


def test_sockaddr_ntop_rejects_non_address():
    with pytest.raises(ValueError):
        sockaddr_ntop(("not-an-ip", 1))


def test_sockaddr_equals_same_address():
    assert sockaddr_equals(("0.0.0.0", 1234), ("0.0.0.0", 1234))
    assert sockaddr_equals(("::", 5678, 0, 0), ("::", 5678, 0, 0))


def test_sockaddr_equals_differs_on_port_or_host():
    assert not sockaddr_equals(("::1", 1234, 0, 0), ("::1", 2345, 0, 0))
    assert not sockaddr_equals(("127.0.0.1", 1234), ("127.0.0.2", 1234))


def test_ipv4_literal_is_not_ipv6():
    assert is_ipv6_address("127.0.0.1") is False
    assert is_ipv6_address("invalid_address") is False


def test_invalid_address_is_rejected():
    logger, stream = make_logger()
    with pytest.raises(TftpConnectionError):
        Connection("invalid_address", "6969", logger)
    assert "Could not translate the host and service" in stream.getvalue()


def test_invalid_port_is_rejected():
    logger, _ = make_logger()
    with pytest.raises(TftpConnectionError):
        Connection("127.0.0.1", "test", logger)


def test_recv_timeout():
    logger, _ = make_logger()
    with Connection("127.0.0.1", "6969", logger) as conn:
        conn.set_recv_timeout(3)
        assert conn.sock.gettimeout() == 3
        conn.set_recv_timeout(0)
        assert conn.sock.gettimeout() is None


def test_close_releases_socket():
    logger, _ = make_logger()
    conn = Connection("127.0.0.1", "6969", logger)
    conn.close()
    assert conn.sock.fileno() == -1


def test_socket_wrapper_is_applied(server_socket):
    logger, _ = make_logger()
    port = server_socket.getsockname()[1]
    with Connection("127.0.0.1", port, logger, PacketLoss(0.0, logger).wrap) as conn:
        assert isinstance(conn.sock, LossySocket)
        assert conn.sock.sendto(b"ping", conn.server_address) == 4
        assert server_socket.recvfrom(64)[0] == b"ping"