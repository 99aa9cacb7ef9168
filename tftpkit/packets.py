"""Encoding and decoding of TFTP packets and option lists."""

from __future__ import annotations

import struct
from enum import IntEnum
from typing import Mapping, Optional, Union

REQUEST_PACKET_MAX_SIZE = 512
OACK_PACKET_MAX_SIZE = 512
DEFAULT_BLKSIZE = 512
DEFAULT_WINDOW_SIZE = 1
DATA_HEADER_SIZE = 4
OPTION_STRING_MAX_SIZE = REQUEST_PACKET_MAX_SIZE - 2 - 4

_HEADER = struct.Struct(">HH")


class PacketError(ValueError):
    """A packet could not be built or is malformed."""


class Mode(IntEnum):
    OCTET = 0
    NETASCII = 1
    INVALID = 2


class Opcode(IntEnum):
    RRQ = 1
    WRQ = 2
    DATA = 3
    ACK = 4
    ERROR = 5
    OACK = 6


class ErrorCode(IntEnum):
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_ALREADY_EXISTS = 6
    NO_SUCH_USER = 7
    INVALID_OPTIONS = 8


class Option(IntEnum):
    """Options recognised in requests and option acknowledgements."""

    BLKSIZE = 0
    TIMEOUT = 1
    TSIZE = 2
    WINDOWSIZE = 3
    READ_TYPE = 4

    @property
    def key(self) -> str:
        """The option name as it appears on the wire."""
        return _OPTION_KEYS[self]


_OPTION_KEYS = {
    Option.BLKSIZE: "blksize",
    Option.TIMEOUT: "timeout",
    Option.TSIZE: "tsize",
    Option.WINDOWSIZE: "windowsize",
    Option.READ_TYPE: "read_type",
}
_OPTIONS_BY_KEY = {key: option for option, key in _OPTION_KEYS.items()}

_MODE_STRINGS = {Mode.OCTET: "octet", Mode.NETASCII: "netascii"}

_DEFAULT_ERROR_MESSAGES = {
    ErrorCode.FILE_NOT_FOUND: "File not found",
    ErrorCode.ACCESS_VIOLATION: "Access violation",
    ErrorCode.DISK_FULL: "Disk full or allocation exceeded",
    ErrorCode.ILLEGAL_OPERATION: "Illegal TFTP operation",
    ErrorCode.UNKNOWN_TRANSFER_ID: "Unknown transfer ID",
    ErrorCode.FILE_ALREADY_EXISTS: "File already exists",
    ErrorCode.NO_SUCH_USER: "No such user",
    ErrorCode.INVALID_OPTIONS: "Invalid options",
}


def mode_to_string(mode: Mode) -> str:
    """Return the wire name of a transfer mode."""
    try:
        return _MODE_STRINGS[Mode(mode)]
    except (KeyError, ValueError):
        raise PacketError(f"invalid transfer mode: {mode!r}") from None


def get_opcode(packet: bytes) -> Union[Opcode, int]:
    """Return the opcode of a packet; unknown opcodes come back as plain ints."""
    if len(packet) < 2:
        raise PacketError("packet is too short to hold an opcode")
    value = int.from_bytes(packet[:2], "big")
    try:
        return Opcode(value)
    except ValueError:
        return value


def _check_uint16(value: int, what: str) -> None:
    if not 0 <= value <= 0xFFFF:
        raise PacketError(f"{what} out of range: {value}")


def _encode_request(opcode: Opcode, filename: str, mode: Mode,
                    options: Optional[Mapping[Option, str]]) -> bytes:
    mode_str = mode_to_string(mode)
    if "\0" in filename:
        raise PacketError("filename contains a NUL character")
    try:
        parts = [opcode.to_bytes(2, "big"), filename.encode("utf-8"), b"\0",
                 mode_str.encode("ascii"), b"\0"]
        for option, value in sorted((options or {}).items()):
            parts += [Option(option).key.encode("ascii"), b"\0", str(value).encode("ascii"), b"\0"]
    except UnicodeEncodeError as exc:
        raise PacketError(f"request cannot be encoded: {exc}") from None
    packet = b"".join(parts)
    if len(packet) > REQUEST_PACKET_MAX_SIZE:
        raise PacketError("request packet exceeds the maximum size")
    return packet


def encode_rrq(filename: str, mode: Mode, options: Optional[Mapping[Option, str]] = None) -> bytes:
    """Build a read request with the active options in recognised order."""
    return _encode_request(Opcode.RRQ, filename, mode, options)


def encode_wrq(filename: str, mode: Mode, options: Optional[Mapping[Option, str]] = None) -> bytes:
    """Build a write request with the active options in recognised order."""
    return _encode_request(Opcode.WRQ, filename, mode, options)


def encode_data(block_number: int, data: bytes) -> bytes:
    _check_uint16(block_number, "block number")
    return _HEADER.pack(Opcode.DATA, block_number) + bytes(data)


def encode_ack(block_number: int) -> bytes:
    _check_uint16(block_number, "block number")
    return _HEADER.pack(Opcode.ACK, block_number)


def encode_error(error_code: int, message: str) -> bytes:
    _check_uint16(int(error_code), "error code")
    return _HEADER.pack(Opcode.ERROR, int(error_code)) + message.encode("utf-8") + b"\0"


def default_error_packet(error_code: ErrorCode) -> bytes:
    """Return the standard error packet for a defined error code."""
    code = ErrorCode(error_code)
    if code is ErrorCode.NOT_DEFINED:
        raise PacketError("no default packet for an undefined error code")
    return encode_error(code, _DEFAULT_ERROR_MESSAGES[code])


def _decode_header(packet: bytes, expected: Opcode) -> int:
    if len(packet) < DATA_HEADER_SIZE:
        raise PacketError(f"{expected.name} packet is too short")
    opcode, value = _HEADER.unpack_from(packet)
    if opcode != expected:
        raise PacketError(f"expected {expected.name} packet, got opcode {opcode}")
    return value


def decode_data(packet: bytes) -> tuple[int, bytes]:
    """Return the block number and payload of a DATA packet."""
    block_number = _decode_header(packet, Opcode.DATA)
    return block_number, bytes(packet[DATA_HEADER_SIZE:])


def decode_ack(packet: bytes) -> int:
    """Return the block number of an ACK packet."""
    return _decode_header(packet, Opcode.ACK)


def decode_error(packet: bytes) -> tuple[int, Optional[str]]:
    """Return the code and message of an ERROR packet.

    The message is None when it is not NUL-terminated.
    """
    if len(packet) < DATA_HEADER_SIZE + 1:
        raise PacketError("Received error packet is too small.")
    code = _decode_header(packet, Opcode.ERROR)
    body = bytes(packet[DATA_HEADER_SIZE:])
    end = body.find(b"\0")
    if end == -1:
        return code, None
    return code, body[:end].decode("utf-8", errors="replace")


def parse_options(payload: bytes) -> dict[Option, str]:
    """Parse NUL-separated name/value pairs, keeping recognised options only."""
    parts = bytes(payload).split(b"\0")
    parts.pop()  # whatever follows the last terminator is incomplete
    result: dict[Option, str] = {}
    for key, value in zip(parts[0::2], parts[1::2]):
        try:
            option = _OPTIONS_BY_KEY[key.decode("ascii").lower()]
        except (UnicodeDecodeError, KeyError):
            continue
        result[option] = value.decode("ascii", errors="replace")
    return dict(sorted(result.items()))


def format_options(options: Mapping[Option, str]) -> str:
    """Render options as 'name=value' pairs in recognised order."""
    return ", ".join(f"{Option(option).key}={value}" for option, value in sorted(options.items()))