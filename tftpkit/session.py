"""Per-request state of a client transfer: sending, retransmitting and receiving packets."""

from __future__ import annotations

from typing import Any, Optional

from .client_options import (
    ClientOptions,
    OackResult,
    RequestType,
    UnrequestedOptionError,
    build_request_options,
    packet_buffer_size,
    parse_oack,
)
from .connection import Connection, TftpConnectionError, sockaddr_ntop
from .logger import Logger
from .packets import (
    ErrorCode,
    Mode,
    Opcode,
    PacketError,
    decode_ack,
    decode_error,
    default_error_packet,
    encode_ack,
    encode_rrq,
    encode_wrq,
    get_opcode,
    mode_to_string,
)
from .stats import start_stats


class TransferError(Exception):
    """A transfer could not go on."""


class ReceiveTimeout(TransferError):
    """No packet arrived after every retransmission attempt."""


def is_in_range(n: int, begin: int, end: int) -> bool:
    """Tell whether n lies in the 16-bit sequence window [begin, end], which may wrap."""
    n &= 0xFFFF
    begin &= 0xFFFF
    end &= 0xFFFF
    if begin <= end:
        return begin <= n <= end
    return begin <= n or n <= end


class Request:
    """State shared by the packets of one client request."""

    def __init__(self, connection: Connection, logger: Logger, retries: int,
                 request_type: RequestType, filename: str, mode: Mode,
                 options: Optional[ClientOptions] = None):
        self.connection = connection
        self.logger = logger
        self.retries = retries
        self.request_type = request_type
        self.filename = filename
        self.mode = Mode(mode)
        self.mode_str = mode_to_string(self.mode)
        self.options = build_request_options(options, request_type)
        self.recv_buffer_size = packet_buffer_size(self.options.block_size)
        self.stats = start_stats(logger)
        self.last_packet: Optional[bytes] = None
        self.server_may_not_support_options = False

    @property
    def use_options(self) -> bool:
        return self.options.use_options

    def _sendto(self, packet: bytes, address: Any = None) -> int:
        target = self.connection.server_address if address is None else address
        return self.connection.sock.sendto(packet, target)

    def _send(self, packet: bytes, name: str) -> None:
        try:
            self._sendto(packet)
        except OSError as exc:
            self.logger.error("Failed to send %s packet. %s", name, exc)
            raise TransferError(f"failed to send {name} packet: {exc}") from exc

    def _log_request_sent(self, name: str) -> None:
        self.logger.trace("Sent %s <file=%s, mode=%s%s%s>", name, self.filename, self.mode_str,
                          ", options=" if self.use_options else "",
                          self.options.options_str if self.use_options else "")

    def send_rrq(self) -> None:
        """Send the read request and remember it for retransmission."""
        try:
            packet = encode_rrq(self.filename, self.mode, self.options.options)
        except PacketError as exc:
            self.logger.error("Failed to create RRQ packet")
            raise TransferError(f"cannot build RRQ packet: {exc}") from exc
        self._send(packet, "RRQ")
        self._log_request_sent("RRQ")
        self.last_packet = packet

    def send_wrq(self) -> None:
        """Send the write request and remember it for retransmission."""
        try:
            packet = encode_wrq(self.filename, self.mode, self.options.options)
        except PacketError as exc:
            self.logger.error("Failed to create WRQ packet.")
            raise TransferError(f"cannot build WRQ packet: {exc}") from exc
        self._send(packet, "WRQ")
        self._log_request_sent("WRQ")
        self.last_packet = packet

    def send_ack(self, block_number: int) -> None:
        """Acknowledge a block and remember the ACK for retransmission."""
        packet = encode_ack(block_number)
        self._send(packet, "ACK")
        self.logger.trace("Sent ACK <block=%d>", block_number)
        self.last_packet = packet

    def send_error(self, error_code: ErrorCode) -> None:
        """Send the standard error packet for a code; errors are never retransmitted."""
        code = ErrorCode(error_code)
        if code is ErrorCode.NOT_DEFINED:
            self.logger.error("Undefined error code are still not supported.")
            raise TransferError("undefined error codes are not supported")
        packet = default_error_packet(code)
        self._send(packet, "ERROR")
        _, message = decode_error(packet)
        self.logger.trace("Sent ERROR <code=%d, message=%s>", int(code), message)

    def retransmit_last_packet(self) -> None:
        """Send again the last request or ACK."""
        if self.last_packet is None:
            self.logger.error("No packet was sent yet, nothing to retransmit.")
            raise TransferError("no packet to retransmit")
        opcode = get_opcode(self.last_packet)
        if opcode is Opcode.RRQ or opcode is Opcode.WRQ:
            self._send(self.last_packet, opcode.name)
            self._log_request_sent(opcode.name)
        elif opcode is Opcode.ACK:
            self._send(self.last_packet, "ACK")
            self.logger.trace("Sent ACK <block=%d>", decode_ack(self.last_packet))
        else:
            self.logger.error("Last packet sent is of an unexpected packet type %d", int(opcode))
            raise TransferError(f"cannot retransmit packet with opcode {int(opcode)}")

    def receive_packet(self) -> tuple[bytes, Any]:
        """Wait for a packet, retransmitting the last one on each timeout.

        Returns the packet and the address it came from. Raises ReceiveTimeout
        once every retry is spent and TransferError on any other failure.
        """
        retransmits = 0
        while True:
            try:
                return self.connection.sock.recvfrom(self.recv_buffer_size)
            except (TimeoutError, BlockingIOError):
                pass
            except OSError as exc:
                self.logger.error("Failed to receive data. %s", exc)
                raise TransferError(f"failed to receive data: {exc}") from exc
            if retransmits >= self.retries:
                self.logger.error("Transfer timed out after %d of %d retransmissions.",
                                  retransmits, self.retries)
                raise ReceiveTimeout(f"no answer after {retransmits} retransmissions")
            self.logger.warn("Receive timed out. Retransmitting last packet.")
            self.retransmit_last_packet()
            retransmits += 1

    def handle_unexpected_peer(self, address: Any) -> None:
        """Log a packet from a stranger and answer it with an unknown-transfer-ID error."""
        try:
            expected = sockaddr_ntop(self.connection.server_address)
        except ValueError as exc:
            expected = None
            self.logger.warn("Could not translate expected address to a string representation. %s", exc)
        try:
            actual = sockaddr_ntop(address)
        except ValueError as exc:
            actual = None
            self.logger.warn("Could not translate actual address to a string representation. %s", exc)
        actual_str = "'%s:%d'" % actual if actual else "'unresolved'"
        expected_str = "'%s:%d'" % expected if expected else "'unresolved'"
        self.logger.warn("Unexpected peer: %s, expected peer: %s. Ignoring packet.",
                         actual_str, expected_str)
        packet = default_error_packet(ErrorCode.UNKNOWN_TRANSFER_ID)
        try:
            self._sendto(packet, address)
        except OSError as exc:
            self.logger.warn("Failed to send ERROR packet. %s", exc)
            return
        code, message = decode_error(packet)
        self.logger.trace("Sent ERROR <code=%d, message=%s>", code, message)

    def handle_oack(self, packet: bytes) -> OackResult:
        """Apply an option acknowledgement and acknowledge it with ACK 0."""
        try:
            result = parse_oack(self.options, bytes(packet[2:]))
        except UnrequestedOptionError as exc:
            self.logger.error("Received OACK with unrequested options.")
            try:
                self.send_error(ErrorCode.INVALID_OPTIONS)
            except TransferError:
                pass
            raise TransferError(str(exc)) from exc
        self.logger.trace("Received OACK %s", result.formatted)
        options = self.options
        options.use_adaptive_timeout = result.use_adaptive_timeout
        options.tsize = result.tsize
        if result.block_size != options.block_size or result.window_size != options.window_size:
            options.block_size = result.block_size
            options.window_size = result.window_size
            self.recv_buffer_size = packet_buffer_size(options.block_size)
        if not options.use_adaptive_timeout and result.timeout_s != options.timeout_s:
            options.timeout_s = result.timeout_s & 0xFF
            try:
                self.connection.set_recv_timeout(options.timeout_s)
            except TftpConnectionError as exc:
                raise TransferError(str(exc)) from exc
        self.send_ack(0)
        return result