"""Simulated packet loss for datagram sockets."""

from __future__ import annotations

import random
from typing import Any, Optional

from .logger import Logger


class PacketLoss:
    """Decides, from a fixed-seed generator, which datagrams are lost."""

    def __init__(self, probability: float, logger: Optional[Logger] = None):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"loss probability must be within [0, 1], got {probability}")
        self.probability = probability
        self.logger = logger
        self._random = random.Random(0)

    def should_drop(self) -> bool:
        return self._random.random() < self.probability

    def wrap(self, sock) -> "LossySocket":
        """Return a socket whose traffic is subject to this loss model."""
        return LossySocket(sock, self)

    def _debug(self, message: str) -> None:
        if self.logger is not None:
            self.logger.debug(message)


class LossySocket:
    """A datagram socket that silently drops some sent and received packets."""

    def __init__(self, sock, loss: PacketLoss):
        self.sock = sock
        self.loss = loss

    def sendto(self, data: bytes, address: Any) -> int:
        if self.loss.should_drop():
            self.loss._debug("Packet was not sent to simulate packet loss.")
            return len(data)
        return self.sock.sendto(data, address)

    def recvfrom(self, bufsize: int):
        received = self.sock.recvfrom(bufsize)
        if self.loss.should_drop():
            self.loss._debug("Received packet was discarded to simulate packet loss.")
            return self.sock.recvfrom(bufsize)
        return received

    def settimeout(self, timeout: Optional[float]) -> None:
        self.sock.settimeout(timeout)

    def gettimeout(self) -> Optional[float]:
        return self.sock.gettimeout()

    def getsockname(self):
        return self.sock.getsockname()

    def close(self) -> None:
        self.sock.close()