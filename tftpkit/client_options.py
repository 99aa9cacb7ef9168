"""Option negotiation for client requests."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .packets import (
    DATA_HEADER_SIZE,
    DEFAULT_BLKSIZE,
    DEFAULT_WINDOW_SIZE,
    OACK_PACKET_MAX_SIZE,
    Option,
    format_options,
    parse_options,
)

DEFAULT_TIMEOUT_S = 2
MIN_BLOCK_SIZE = 8
MAX_BLOCK_SIZE = 65464

_NUMBER = re.compile(r"\s*([+-]?)(\d*)")


class RequestType(Enum):
    LIST = "list"
    GET = "get"
    PUT = "put"


class UnrequestedOptionError(Exception):
    """The server acknowledged an option that was not requested."""


@dataclass
class ClientOptions:
    """Options a caller asks for; None or zero means not requested."""

    timeout_s: Optional[int] = None
    block_size: Optional[int] = None
    window_size: Optional[int] = None
    use_tsize: bool = False
    use_adaptive_timeout: bool = False


@dataclass
class RequestOptions:
    """Effective transfer parameters and the options sent in the request."""

    options: dict[Option, str] = field(default_factory=dict)
    timeout_s: int = DEFAULT_TIMEOUT_S
    block_size: int = DEFAULT_BLKSIZE
    window_size: int = DEFAULT_WINDOW_SIZE
    use_tsize: bool = False
    tsize: int = 0
    use_adaptive_timeout: bool = False

    @property
    def use_options(self) -> bool:
        return bool(self.options)

    @property
    def options_str(self) -> str:
        return format_options(self.options)


@dataclass
class OackResult:
    """Parameters agreed by an option acknowledgement."""

    options: dict[Option, str]
    block_size: int
    timeout_s: int
    window_size: int
    tsize: int
    use_adaptive_timeout: bool

    @property
    def formatted(self) -> str:
        return format_options(self.options)


def build_request_options(options: Optional[ClientOptions], request_type: RequestType) -> RequestOptions:
    """Work out the effective parameters and the options to put in a request."""
    timeout_required = block_size_required = window_size_required = False
    tsize_required = adaptive_required = False
    if options is not None:
        timeout_required = bool(options.timeout_s)
        block_size_required = (options.block_size is not None
                               and MIN_BLOCK_SIZE <= options.block_size <= MAX_BLOCK_SIZE)
        window_size_required = bool(options.window_size)
        tsize_required = options.use_tsize
        adaptive_required = options.use_adaptive_timeout

    result = RequestOptions(
        timeout_s=options.timeout_s if timeout_required else DEFAULT_TIMEOUT_S,
        block_size=options.block_size if block_size_required else DEFAULT_BLKSIZE,
        window_size=options.window_size if window_size_required else DEFAULT_WINDOW_SIZE,
        use_tsize=tsize_required,
        use_adaptive_timeout=adaptive_required,
    )
    active = result.options
    if block_size_required:
        active[Option.BLKSIZE] = str(result.block_size)
    if adaptive_required:
        active[Option.TIMEOUT] = "adaptive"
    elif timeout_required:
        active[Option.TIMEOUT] = str(result.timeout_s)
    if tsize_required:
        active[Option.TSIZE] = "0"
    if window_size_required and request_type is not RequestType.PUT:
        active[Option.WINDOWSIZE] = str(result.window_size)
    if request_type is RequestType.LIST:
        active[Option.READ_TYPE] = "directory"
    result.options = dict(sorted(active.items()))
    return result


def packet_buffer_size(block_size: int) -> int:
    """Receive buffer size able to hold a DATA block or an OACK."""
    return max(OACK_PACKET_MAX_SIZE, DATA_HEADER_SIZE + block_size)


def _strtoul(text: str, bits: int) -> int:
    sign, digits = _NUMBER.match(text).groups()
    value = int(digits) if digits else 0
    if sign == "-":
        value = -value
    return value & ((1 << bits) - 1)


def _raw_pairs(payload: bytes):
    parts = bytes(payload).split(b"\0")
    parts.pop()
    return zip(parts[0::2], parts[1::2])


def parse_oack(request_options: RequestOptions, payload: bytes) -> OackResult:
    """Read an OACK payload against the request's options.

    Raises UnrequestedOptionError if the server acknowledged an option that
    the request did not carry.
    """
    acked = parse_options(payload)
    use_adaptive = False
    if request_options.use_adaptive_timeout:
        for key, value in _raw_pairs(payload):
            if (key.lower() == Option.TIMEOUT.key.encode("ascii")
                    and value.lower() == b"adaptive"):
                acked[Option.TIMEOUT] = "adaptive"
                use_adaptive = True
                break

    block_size = request_options.block_size
    timeout_s = request_options.timeout_s
    window_size = request_options.window_size
    tsize = request_options.tsize
    for option, value in sorted(acked.items()):
        if option not in request_options.options:
            raise UnrequestedOptionError(f"Received OACK with unrequested option {option.key}.")
        if option is Option.BLKSIZE:
            block_size = _strtoul(value, 16)
        elif option is Option.TIMEOUT:
            if not use_adaptive:
                timeout_s = _strtoul(value, 16)
        elif option is Option.TSIZE:
            tsize = _strtoul(value, 64)
        elif option is Option.WINDOWSIZE:
            window_size = _strtoul(value, 16)

    return OackResult(
        options=dict(sorted(acked.items())),
        block_size=block_size,
        timeout_s=timeout_s,
        window_size=window_size,
        tsize=tsize,
        use_adaptive_timeout=use_adaptive,
    )