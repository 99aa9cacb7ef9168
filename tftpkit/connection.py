"""UDP connection to a TFTP server and socket-address helpers."""

from __future__ import annotations

import ipaddress
import socket
from typing import Any, Callable, Optional

from .logger import Logger

_LOOKUP_FLAGS = socket.AI_NUMERICSERV | socket.AI_ADDRCONFIG


class TftpConnectionError(Exception):
    """The connection to the server could not be set up or used."""


def is_ipv6_address(host: str) -> bool:
    """Tell whether the host resolves as an IPv6 address."""
    try:
        socket.getaddrinfo(host, None, socket.AF_INET6, socket.SOCK_DGRAM, 0, socket.AI_ADDRCONFIG)
    except (socket.gaierror, UnicodeError):
        return False
    return True


def _parse_address(address: Any):
    host = str(address[0]).split("%", 1)[0]
    try:
        return ipaddress.ip_address(host), int(address[1])
    except (ValueError, IndexError, TypeError):
        raise ValueError(f"not an internet socket address: {address!r}") from None


def sockaddr_ntop(address: Any) -> tuple[str, int]:
    """Return the textual address and port of a socket address."""
    ip, port = _parse_address(address)
    return str(ip), port


def sockaddr_equals(first: Any, second: Any) -> bool:
    """Tell whether two socket addresses name the same host and port."""
    return _parse_address(first) == _parse_address(second)


class Connection:
    """A datagram socket aimed at a resolved server address."""

    def __init__(self, host: str, port, logger: Logger,
                 socket_wrapper: Optional[Callable[[socket.socket], Any]] = None):
        self.logger = logger
        is_ipv6 = is_ipv6_address(host)
        family = socket.AF_INET6 if is_ipv6 else socket.AF_INET
        try:
            infos = socket.getaddrinfo(host, str(port), family, socket.SOCK_DGRAM, 0, _LOOKUP_FLAGS)
        except (socket.gaierror, UnicodeError) as exc:
            logger.error("Could not translate the host and service required to a valid internet address. %s", exc)
            raise TftpConnectionError(f"cannot resolve {host}:{port}: {exc}") from exc
        ai_family, ai_type, ai_proto, _, sockaddr = infos[0]
        try:
            raw = socket.socket(ai_family, ai_type, ai_proto)
        except OSError as exc:
            logger.error("Could not create a socket. %s", exc)
            raise TftpConnectionError(f"cannot create socket: {exc}") from exc
        try:
            raw.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if is_ipv6:
                raw.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        except OSError as exc:
            raw.close()
            logger.error("Could not set socket options. %s", exc)
            raise TftpConnectionError(f"cannot set socket options: {exc}") from exc
        self.server_address = sockaddr
        self.sock = socket_wrapper(raw) if socket_wrapper is not None else raw

    def set_recv_timeout(self, timeout_s: int) -> None:
        """Set the receive timeout in seconds; zero waits forever."""
        try:
            self.sock.settimeout(timeout_s if timeout_s else None)
        except (OSError, ValueError) as exc:
            self.logger.error("Could not set socket timeout option. %s", exc)
            raise TftpConnectionError(f"cannot set timeout: {exc}") from exc

    def local_address(self) -> tuple[str, int]:
        """Return the address and port the socket is bound to."""
        try:
            return sockaddr_ntop(self.sock.getsockname())
        except (OSError, ValueError) as exc:
            raise TftpConnectionError(f"cannot get the socket name: {exc}") from exc

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError as exc:
            self.logger.error("Could not close socket: %s", exc)
            raise TftpConnectionError(f"cannot close socket: {exc}") from exc

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()