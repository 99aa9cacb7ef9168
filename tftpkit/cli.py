"""Command-line parsing for the TFTP client."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from .client_options import ClientOptions
from .logger import LogLevel
from .packets import Mode

_LOG_LEVELS = {
    "off": LogLevel.OFF,
    "fatal": LogLevel.FATAL,
    "error": LogLevel.ERROR,
    "warn": LogLevel.WARN,
    "info": LogLevel.INFO,
    "debug": LogLevel.DEBUG,
    "trace": LogLevel.TRACE,
    "all": LogLevel.ALL,
}

_MODES = {
    "netascii": Mode.NETASCII,
    "octet": Mode.OCTET,
}


class Command(Enum):
    LIST = "list"
    GET = "get"
    PUT = "put"


class CliError(Exception):
    """The command line could not be parsed."""

    def __init__(self, message: str, usage: str = ""):
        super().__init__(message)
        self.usage = usage


@dataclass
class ClientArgs:
    """Everything the client command line asks for."""

    host: str
    command: Command
    port: str = "6969"
    mode: Mode = Mode.OCTET
    filename: Optional[str] = None
    directory: Optional[str] = None
    output: Optional[str] = None
    options: ClientOptions = field(default_factory=ClientOptions)
    retries: int = 3
    verbose_level: LogLevel = LogLevel.INFO
    loss_probability: float = 0.0


@dataclass(frozen=True)
class _Entry:
    name: str
    option_text: str
    type_description: Optional[str]


class _Parser(argparse.ArgumentParser):
    """Argument parser that raises CliError and records its options for the footer."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("formatter_class", argparse.RawDescriptionHelpFormatter)
        super().__init__(*args, **kwargs)
        self.entries: list[_Entry] = []
        self.subcommands: list[_Parser] = []
        self.root: _Parser = self
        if self.add_help:
            self.entries.append(_Entry("-h,--help", "", None))

    def error(self, message: str):
        raise CliError(message, self.format_usage())

    def add_value(self, *flags: str, option_text: str, type_description: str, help_text: str,
                  converter: Callable[[str], object], default: Optional[str] = None,
                  hidden: bool = False, **kwargs) -> None:
        if hidden:
            self.add_argument(*flags, type=converter, default=argparse.SUPPRESS,
                              help=argparse.SUPPRESS, **kwargs)
            return
        if default is not None:
            help_text = f"{help_text} (default: {default})"
        self.add_argument(*flags, type=converter, default=default, metavar=option_text,
                          help=help_text, **kwargs)
        self.entries.append(_Entry(",".join(flags), option_text, type_description))

    def add_flag(self, *flags: str, help_text: str, hidden: bool = False) -> None:
        if hidden:
            self.add_argument(*flags, action="store_true", default=argparse.SUPPRESS,
                              help=argparse.SUPPRESS)
            return
        self.add_argument(*flags, action="store_true", default=False, help=help_text)
        self.entries.append(_Entry(",".join(flags), "", None))


def _ranged(convert: Callable[[str], float], low, high) -> Callable[[str], object]:
    kind = "integer" if convert is int else "number"

    def check(text: str):
        try:
            value = convert(text)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{text!r} is not a valid {kind}") from None
        if not low <= value <= high:
            raise argparse.ArgumentTypeError(f"Value {text} not in range [{low} - {high}]")
        return value

    return check


def _port(text: str) -> str:
    _ranged(int, 0, 65535)(text)
    return text


def _log_level(text: str) -> LogLevel:
    try:
        return _LOG_LEVELS[text.lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(
            f"{text} not in {{{', '.join(_LOG_LEVELS)}}}") from None


def _mode(text: str) -> Mode:
    try:
        return _MODES[text.lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(f"{text} not in {{{', '.join(_MODES)}}}") from None


def _existing_file(text: str) -> str:
    if not os.path.isfile(text):
        raise argparse.ArgumentTypeError(f"File does not exist: {text}")
    return text


def _level_names() -> str:
    return ", ".join(name for name, _ in sorted(_LOG_LEVELS.items(), key=lambda item: item[1]))


def _mode_names() -> str:
    return ", ".join(sorted(_MODES))


def _add_global_options(parser: _Parser, hidden: bool) -> None:
    parser.add_value("-p", "--port", option_text="PORT", dest="port",
                     type_description="Integer number in range [0, 65535]",
                     help_text="Port number for the connection", converter=_port,
                     default="6969", hidden=hidden)
    parser.add_value("-r", "--retries", option_text="RETRIES", dest="retries",
                     type_description="Integer number in range [0, 255]",
                     help_text="Number of retries attempts before giving up",
                     converter=_ranged(int, 0, 255), default="3", hidden=hidden)
    parser.add_value("-t", "--timeout", option_text="SECONDS", dest="timeout",
                     type_description="Integer number in range [1, 255]",
                     help_text="Timeout in seconds for response",
                     converter=_ranged(int, 1, 255), hidden=hidden)
    parser.add_value("-b", "--block-size", option_text="BLOCK_SIZE", dest="block_size",
                     type_description="Integer number in range [8, 65464]",
                     help_text="Size of the data block for file transfer",
                     converter=_ranged(int, 8, 65464), hidden=hidden)
    parser.add_value("-w", "--window-size", option_text="WINDOW_SIZE", dest="window_size",
                     type_description="Integer number in range [1, 65535]",
                     help_text="Dispatch window size",
                     converter=_ranged(int, 1, 65535), hidden=hidden)
    parser.add_flag("-a", "--adaptive-timeout",
                    help_text="Enable adaptive timeout based on network delays", hidden=hidden)
    parser.add_flag("--use-tsize", help_text="Request file size from the server", hidden=hidden)
    parser.add_value("-l", "--loss-probability", option_text="PROBABILITY", dest="loss_probability",
                     type_description="Decimal number in range [0.0, 1.0]",
                     help_text="Simulated packet loss probability",
                     converter=_ranged(float, 0.0, 1.0), default="0.0", hidden=hidden)
    parser.add_value("-v", "--log-level", option_text="LEVEL", dest="log_level",
                     type_description=f"Enum value in: {{{_level_names()}}}",
                     help_text="Verbosity logging level", converter=_log_level,
                     default="info", hidden=hidden)


def _add_mode(parser: _Parser) -> None:
    parser.add_value("-m", "--mode", option_text="MODE", dest="mode",
                     type_description=f"Enum value in: {{{_mode_names()}}}",
                     help_text="Transfer mode", converter=_mode, default="octet")


def _column_width(root: _Parser) -> int:
    parsers = [root, *root.subcommands]
    return 4 + max(len(f"  {entry.name} {entry.option_text}")
                   for parser in parsers for entry in parser.entries)


def argument_types_footer(parser: _Parser) -> str:
    """Return the 'Argument Types' section describing the parser's value options."""
    typed = [entry for entry in parser.entries if entry.type_description is not None]
    if not typed:
        return ""
    width = _column_width(parser.root)
    lines = ["Argument Types:\n"]
    for entry in typed:
        padding = " " * (width - len(entry.option_text) - 2)
        lines.append(f"  {entry.option_text}{padding}{entry.type_description}\n")
    return "".join(lines)


def build_parser() -> _Parser:
    """Build the client parser with its list, get and put subcommands."""
    parser = _Parser(description="TFTP Client")
    parser.add_value("host", option_text="ADDRESS",
                     type_description="IPv4 or IPv6 address in standard format",
                     help_text="IP address or hostname of the server", converter=str)
    _add_global_options(parser, hidden=False)

    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    list_cmd = subparsers.add_parser("list", help="List files on a server directory",
                                     description="List files on a server directory")
    list_cmd.add_value("directory", option_text="DIRECTORY", type_description="String of text",
                       help_text="Directory containing the files to list", converter=str,
                       default=".", nargs="?")
    _add_mode(list_cmd)
    _add_global_options(list_cmd, hidden=True)

    get_cmd = subparsers.add_parser("get", help="Download a file from the server",
                                    description="Download a file from the server")
    get_cmd.add_value("filename", option_text="FILENAME", type_description="String of text",
                      help_text="File to download", converter=str)
    _add_mode(get_cmd)
    get_cmd.add_value("-o", "--output", option_text="OUTPUT_FILE", dest="output",
                      type_description="Path to the file", help_text="Output file name",
                      converter=str)
    _add_global_options(get_cmd, hidden=True)

    put_cmd = subparsers.add_parser("put", help="Upload a file to the server",
                                    description="Upload a file to the server")
    put_cmd.add_value("filename", option_text="FILENAME",
                      type_description="Path to an existing file",
                      help_text="File to upload", converter=_existing_file)
    _add_mode(put_cmd)
    _add_global_options(put_cmd, hidden=True)

    for sub in (list_cmd, get_cmd, put_cmd):
        sub.root = parser
        parser.subcommands.append(sub)
    for each in (parser, *parser.subcommands):
        footer = argument_types_footer(each)
        if footer:
            each.epilog = footer
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> ClientArgs:
    """Parse the client command line; raises CliError on invalid input."""
    namespace = build_parser().parse_args(argv)
    command = Command(namespace.command)
    options = ClientOptions(
        timeout_s=namespace.timeout,
        block_size=namespace.block_size,
        window_size=namespace.window_size,
        use_tsize=namespace.use_tsize,
        use_adaptive_timeout=namespace.adaptive_timeout,
    )
    return ClientArgs(
        host=namespace.host,
        command=command,
        port=namespace.port,
        mode=namespace.mode,
        filename=getattr(namespace, "filename", None),
        directory=namespace.directory if command is Command.LIST else None,
        output=getattr(namespace, "output", None) or None,
        options=options,
        retries=namespace.retries,
        verbose_level=namespace.log_level,
        loss_probability=namespace.loss_probability,
    )