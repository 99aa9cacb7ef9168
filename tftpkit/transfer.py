"""Client file transfers: receiving and sending files block by block."""

from __future__ import annotations

import contextlib
import errno
from typing import Any, BinaryIO, Callable, Optional

from .client_options import (
    DEFAULT_TIMEOUT_S,
    ClientOptions,
    RequestType,
)
from .connection import Connection, TftpConnectionError, sockaddr_equals, sockaddr_ntop
from .logger import Logger
from .packets import (
    DATA_HEADER_SIZE,
    DEFAULT_BLKSIZE,
    ErrorCode,
    Mode,
    Opcode,
    Option,
    PacketError,
    decode_ack,
    decode_data,
    decode_error,
    encode_data,
    get_opcode,
)
from .session import ReceiveTimeout, Request, TransferError, is_in_range
from .stats import ClientStats


def _opcode(request: Request, packet: bytes):
    try:
        return get_opcode(packet)
    except PacketError as exc:
        request.logger.error("Unexpected opcode in a %d byte packet", len(packet))
        raise TransferError(str(exc)) from exc


def _fail_on_error_packet(request: Request, packet: bytes, is_first_receive: bool) -> None:
    """Log an ERROR packet from the server and abort the transfer."""
    try:
        code, message = decode_error(packet)
    except PacketError:
        request.logger.error("Received error packet is too small.")
        description = "malformed error packet"
    else:
        if message is None:
            message = "Error message is not null-terminated."
        request.logger.error("Received error %d: %s", code, message)
        description = f"server error {code}: {message}"
    request.server_may_not_support_options = is_first_receive and request.use_options
    raise TransferError(description)


def _receive(request: Request, is_first_receive: bool) -> tuple[bytes, Any]:
    try:
        packet, address = request.receive_packet()
    except ReceiveTimeout:
        if is_first_receive and request.use_options:
            request.server_may_not_support_options = True
        raise
    if not packet:
        request.logger.error("Received empty packet.")
        raise TransferError("received empty packet")
    return packet, address


def _write_block(request: Request, file: BinaryIO, data: bytes) -> None:
    try:
        file.write(data)
    except OSError as exc:
        request.logger.error("Failed to write to file. %s", exc)
        code = ErrorCode.DISK_FULL if exc.errno == errno.ENOSPC else ErrorCode.NOT_DEFINED
        with contextlib.suppress(TransferError):
            request.send_error(code)
        raise TransferError(f"failed to write to file: {exc}") from exc


def receive_file(request: Request, file: BinaryIO) -> None:
    """Receive DATA blocks into file, acknowledging each, until a short block ends the transfer."""
    logger = request.logger
    connection = request.connection
    is_first_receive = True
    expected_block = 1
    while True:
        packet, address = _receive(request, is_first_receive)
        if is_first_receive:
            connection.server_address = address
        if not sockaddr_equals(connection.server_address, address):
            request.handle_unexpected_peer(address)
            continue
        opcode = _opcode(request, packet)
        if opcode is Opcode.OACK:
            if is_first_receive:
                request.handle_oack(packet)
        elif opcode is Opcode.DATA:
            try:
                block_number, data = decode_data(packet)
            except PacketError as exc:
                logger.error("Received malformed DATA packet.")
                raise TransferError(str(exc)) from exc
            if block_number != expected_block:
                logger.debug("Received out of order DATA packet: expected block %d, received block %d. "
                             "Retransmitting last ACK.", expected_block, block_number)
                request.retransmit_last_packet()
            else:
                expected_block = (expected_block + 1) & 0xFFFF
                _write_block(request, file, data)
                request.stats.file_bytes_received += len(data)
                logger.trace("Received DATA <block=%d, size=%d bytes>", block_number, len(data))
                request.send_ack(block_number)
                if len(data) < request.options.block_size:
                    return
        elif opcode is Opcode.ERROR:
            _fail_on_error_packet(request, packet, is_first_receive)
        else:
            logger.error("Unexpected opcode %d", int(opcode))
            raise TransferError(f"unexpected opcode {int(opcode)}")
        is_first_receive = False


def _send_data(request: Request, packet: bytes) -> int:
    try:
        return request.connection.sock.sendto(packet, request.connection.server_address)
    except OSError as exc:
        request.logger.error("Failed to send data packet. %s", exc)
        raise TransferError(f"failed to send data packet: {exc}") from exc


def _read_block(request: Request, file: BinaryIO, size: int) -> bytes:
    try:
        return file.read(size) or b""
    except OSError as exc:
        request.logger.error("Failed to read from file.")
        raise TransferError(f"failed to read from file: {exc}") from exc


def _retransmit_window(request: Request, window: dict[int, bytes],
                       window_begin: int, next_sequence: int) -> None:
    logger = request.logger
    logger.trace("Retransmitting DATA packets in window [%d, %d].",
                 window_begin, (next_sequence - 1) & 0xFFFF)
    for block_number, packet in window.items():
        sent = _send_data(request, packet)
        if sent < len(packet):
            logger.warn("Could not send whole packet. The file transfer failed "
                        "but the server will not be able to detect it.")
            raise TransferError("could not send the whole DATA packet")
        logger.trace("Retransmitted DATA packet <block=%d, size=%d bytes>.",
                     block_number, len(packet) - DATA_HEADER_SIZE)


def send_file(request: Request, file: BinaryIO) -> None:
    """Send file as DATA blocks through a sliding window until the last block is acknowledged."""
    logger = request.logger
    connection = request.connection
    options = request.options
    is_first_receive = True
    is_waiting_oack = request.use_options
    window: dict[int, bytes] = {}
    window_begin = 1
    next_sequence = 1
    end_of_file = False
    while True:
        window_end = (window_begin + options.window_size - 1) & 0xFFFF
        if (not is_first_receive and not is_waiting_oack and not end_of_file
                and is_in_range(next_sequence, window_begin, window_end)):
            block = _read_block(request, file, options.block_size)
            if len(block) != options.block_size:
                end_of_file = True
            packet = encode_data(next_sequence, block)
            logger.trace("Created DATA packets.")
            _send_data(request, packet)
            window[next_sequence] = packet
            logger.trace("Sent DATA packet <block=%d, size=%d bytes>.", next_sequence, len(block))
            next_sequence = (next_sequence + 1) & 0xFFFF
        try:
            packet, address = _receive(request, is_first_receive)
        except ReceiveTimeout:
            if is_first_receive and request.use_options:
                raise
            logger.debug("Timeout for server. Retransmission.")
            if is_waiting_oack:
                request.send_wrq()
            else:
                _retransmit_window(request, window, window_begin, next_sequence)
            continue
        if is_first_receive:
            connection.server_address = address
        if not sockaddr_equals(connection.server_address, address):
            request.handle_unexpected_peer(address)
            continue
        opcode = _opcode(request, packet)
        if opcode is Opcode.OACK:
            if is_first_receive:
                request.handle_oack(packet)
                is_waiting_oack = False
        elif opcode is Opcode.ACK:
            try:
                block_number = decode_ack(packet)
            except PacketError as exc:
                logger.error("Received malformed ACK packet.")
                raise TransferError(str(exc)) from exc
            last_sent = (next_sequence - 1) & 0xFFFF
            accepted = True
            if is_waiting_oack and block_number == 0:
                is_waiting_oack = False
                options.block_size = DEFAULT_BLKSIZE
                options.timeout_s = DEFAULT_TIMEOUT_S
                options.use_adaptive_timeout = False
                options.use_tsize = False
            elif not is_in_range(block_number, window_begin, last_sent):
                logger.trace("Received unexpected ACK <block=%d> not in window [%d, %d]. Ignoring packet.",
                             block_number, window_begin, last_sent)
                accepted = False
            if accepted:
                logger.trace("Received ACK <block=%d>", block_number)
                window_begin = (block_number + 1) & 0xFFFF
                if block_number in window:
                    while window:
                        acknowledged = next(iter(window))
                        del window[acknowledged]
                        if acknowledged == block_number:
                            break
                if end_of_file and block_number == last_sent:
                    return
        elif opcode is Opcode.ERROR:
            _fail_on_error_packet(request, packet, is_first_receive)
        else:
            logger.error("Unexpected opcode %d", int(opcode))
            raise TransferError(f"unexpected opcode {int(opcode)}")
        is_first_receive = False


def _with_flag(error: TransferError, request: Optional[Request]) -> TransferError:
    error.server_may_not_support_options = (
        request.server_may_not_support_options if request is not None else False)
    return error


class TftpClient:
    """Downloads, uploads and lists files on a TFTP server.

    Every operation raises TransferError on failure; the exception carries a
    server_may_not_support_options attribute telling whether retrying without
    options might succeed.
    """

    def __init__(self, logger: Optional[Logger] = None, retries: int = 0,
                 stats_callback: Optional[Callable[[ClientStats], None]] = None,
                 socket_wrapper: Optional[Callable[[Any], Any]] = None):
        self.logger = logger if logger is not None else Logger()
        self.retries = retries
        self.stats_callback = stats_callback
        self.socket_wrapper = socket_wrapper

    def get(self, host: str, port, filename: str, mode: Mode = Mode.OCTET,
            options: Optional[ClientOptions] = None, dest: BinaryIO = None) -> None:
        """Download filename from the server into dest."""
        self._run(RequestType.GET, host, port, filename, mode, options, dest)

    def put(self, host: str, port, filename: str, mode: Mode = Mode.OCTET,
            options: Optional[ClientOptions] = None, src: BinaryIO = None) -> None:
        """Upload the contents of src to the server as filename."""
        self._run(RequestType.PUT, host, port, filename, mode, options, src)

    def list(self, host: str, port, directory: str = ".", mode: Mode = Mode.OCTET,
             options: Optional[ClientOptions] = None, dest: BinaryIO = None) -> None:
        """Write the listing of a server directory into dest."""
        self._run(RequestType.LIST, host, port, directory, mode, options, dest)

    def _run(self, request_type: RequestType, host: str, port, filename: str, mode: Mode,
             options: Optional[ClientOptions], file: BinaryIO) -> None:
        if file is None:
            raise ValueError("a file object is required")
        try:
            connection = Connection(host, port, self.logger, self.socket_wrapper)
        except TftpConnectionError as exc:
            raise _with_flag(TransferError(str(exc)), None) from exc
        request: Optional[Request] = None
        try:
            request = Request(connection, self.logger, self.retries, request_type, filename, mode, options)
            connection.set_recv_timeout(request.options.timeout_s)
            if request_type is RequestType.PUT:
                self._handle_put(request, file)
            else:
                self._handle_get(request, file)
        except TransferError as exc:
            _with_flag(exc, request)
            raise
        except (TftpConnectionError, PacketError) as exc:
            raise _with_flag(TransferError(str(exc)), request) from exc
        finally:
            with contextlib.suppress(TftpConnectionError):
                connection.close()

    def _server_description(self, request: Request) -> Optional[tuple[str, int]]:
        try:
            return sockaddr_ntop(request.connection.server_address)
        except ValueError as exc:
            self.logger.warn("Could not translate binding address to a string representation. %s", exc)
            return None

    def _send_request(self, request: Request, send: Callable[[], None]) -> None:
        send()
        try:
            sockname = request.connection.sock.getsockname()
        except OSError as exc:
            self.logger.error("Failed to get the socket name. %s", exc)
            raise TransferError(f"failed to get the socket name: {exc}") from exc
        try:
            address, port = sockaddr_ntop(sockname)
        except ValueError as exc:
            self.logger.warn("Could not translate binding address to a string representation. %s", exc)
            self.logger.debug("Bound to unresolved address")
        else:
            self.logger.debug("Bound to %s:%d", address, port)

    def _handle_get(self, request: Request, file: BinaryIO) -> None:
        operation = ("Listing directory" if Option.READ_TYPE in request.options.options
                     else "Getting file")
        server = self._server_description(request)
        if server is None:
            self.logger.info("%s %s from unresolved server name [%s]",
                             operation, request.filename, request.mode_str)
        else:
            self.logger.info("%s %s from %s:%d [%s]",
                             operation, request.filename, server[0], server[1], request.mode_str)
        self._send_request(request, request.send_rrq)
        receive_file(request, file)
        if self.stats_callback is not None:
            self.stats_callback(request.stats)
        if request.options.use_tsize and request.stats.file_bytes_received != request.options.tsize:
            self.logger.error("Received file size does not match the expected size.")
            raise TransferError("received file size does not match the expected size")

    def _handle_put(self, request: Request, file: BinaryIO) -> None:
        server = self._server_description(request)
        if server is None:
            self.logger.info("Sending file %s from unresolved server name [%s]",
                             request.filename, request.mode_str)
        else:
            self.logger.info("Sending file %s from %s:%d [%s]",
                             request.filename, server[0], server[1], request.mode_str)
        self._send_request(request, request.send_wrq)
        send_file(request, file)
        if self.stats_callback is not None:
            self.stats_callback(request.stats)