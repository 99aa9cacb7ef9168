import io
import socket

import pytest

from tftpkit.logger import LogLevel, Logger, LoggerConfig
from tftpkit.packet_loss import LossySocket, PacketLoss

ADDRESS = ("127.0.0.1", 6969)


class FakeSocket:
    def __init__(self, incoming=()):
        self.sent = []
        self.incoming = list(incoming)
        self.timeout = None
        self.closed = False

    def sendto(self, data, address):
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, bufsize):
        if not self.incoming:
            raise socket.timeout("timed out")
        return self.incoming.pop(0)

    def settimeout(self, timeout):
        self.timeout = timeout

    def gettimeout(self):
        return self.timeout

    def getsockname(self):
        return ("0.0.0.0", 40000)

    def close(self):
        self.closed = True


def debug_logger():
    stream = io.StringIO()
    logger = Logger(LoggerConfig(file=stream, default_level=LogLevel.DEBUG))
    return logger, stream


def test_zero_probability_passes_everything():
    logger, stream = debug_logger()
    fake = FakeSocket([(b"one", ADDRESS)])
    lossy = PacketLoss(0.0, logger).wrap(fake)
    assert lossy.sendto(b"data", ADDRESS) == 4
    assert fake.sent == [(b"data", ADDRESS)]
    assert lossy.recvfrom(516) == (b"one", ADDRESS)
    assert stream.getvalue() == ""


def test_full_probability_drops_sends():
    logger, stream = debug_logger()
    fake = FakeSocket()
    lossy = PacketLoss(1.0, logger).wrap(fake)
    assert lossy.sendto(b"data", ADDRESS) == 4
    assert fake.sent == []
    assert "Packet was not sent to simulate packet loss." in stream.getvalue()


def test_full_probability_discards_first_received():
    logger, stream = debug_logger()
    fake = FakeSocket([(b"first", ADDRESS), (b"second", ADDRESS)])
    lossy = LossySocket(fake, PacketLoss(1.0, logger))
    assert lossy.recvfrom(516) == (b"second", ADDRESS)
    assert "Received packet was discarded to simulate packet loss." in stream.getvalue()


def test_receive_timeout_propagates():
    fake = FakeSocket([(b"only", ADDRESS)])
    lossy = PacketLoss(1.0).wrap(fake)
    with pytest.raises(socket.timeout):
        lossy.recvfrom(516)


def test_drop_sequence_is_deterministic():
    first = PacketLoss(0.5)
    second = PacketLoss(0.5)
    draws = [first.should_drop() for _ in range(100)]
    assert draws == [second.should_drop() for _ in range(100)]
    assert True in draws and False in draws


def test_invalid_probability_is_rejected():
    with pytest.raises(ValueError):
        PacketLoss(1.5)
    with pytest.raises(ValueError):
        PacketLoss(-0.1)


def test_socket_operations_are_delegated():
    fake = FakeSocket()
    lossy = PacketLoss(0.0).wrap(fake)
    lossy.settimeout(2)
    assert lossy.gettimeout() == 2
    assert lossy.getsockname() == fake.getsockname()
    lossy.close()
    assert fake.closed is True