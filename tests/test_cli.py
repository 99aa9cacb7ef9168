import re

import pytest

from tftpkit.cli import (
    CliError,
    ClientArgs,
    Command,
    argument_types_footer,
    build_parser,
    parse_args,
)
from tftpkit.logger import LogLevel
from tftpkit.packets import Mode


def test_get_defaults():
    args = parse_args(["localhost", "get", "file.bin"])
    assert isinstance(args, ClientArgs)
    assert args.command is Command.GET
    assert args.host == "localhost"
    assert args.filename == "file.bin"
    assert args.port == "6969"
    assert args.retries == 3
    assert args.verbose_level is LogLevel.INFO
    assert args.mode is Mode.OCTET
    assert args.loss_probability == 0.0
    assert args.output is None
    assert args.options.timeout_s is None
    assert args.options.block_size is None
    assert args.options.window_size is None
    assert args.options.use_tsize is False
    assert args.options.use_adaptive_timeout is False


def test_get_with_options():
    args = parse_args(["-t", "5", "-b", "1024", "-w", "4", "-a", "--use-tsize",
                       "-r", "7", "-l", "0.25", "::1", "get", "f", "-o", "out.bin"])
    assert args.options.timeout_s == 5
    assert args.options.block_size == 1024
    assert args.options.window_size == 4
    assert args.options.use_adaptive_timeout is True
    assert args.options.use_tsize is True
    assert args.retries == 7
    assert args.loss_probability == 0.25
    assert args.output == "out.bin"


def test_global_options_fall_through_to_subcommand():
    args = parse_args(["host", "get", "f", "-p", "7000", "-v", "debug", "-a"])
    assert args.port == "7000"
    assert args.verbose_level is LogLevel.DEBUG
    assert args.options.use_adaptive_timeout is True


def test_global_option_before_subcommand_is_kept():
    args = parse_args(["-p", "7000", "host", "get", "f"])
    assert args.port == "7000"


@pytest.mark.parametrize("text,level", [("TRACE", LogLevel.TRACE), ("Off", LogLevel.OFF),
                                        ("all", LogLevel.ALL)])
def test_log_level_ignores_case(text, level):
    assert parse_args(["-v", text, "h", "get", "f"]).verbose_level is level


def test_mode_ignores_case():
    assert parse_args(["h", "get", "f", "-m", "NetAscii"]).mode is Mode.NETASCII


def test_list_default_and_given_directory():
    default = parse_args(["h", "list"])
    assert default.command is Command.LIST
    assert default.directory == "."
    given = parse_args(["h", "list", "pub", "-m", "netascii"])
    assert given.directory == "pub"
    assert given.mode is Mode.NETASCII


def test_put_requires_existing_file(tmp_path):
    source = tmp_path / "upload.bin"
    source.write_bytes(b"data")
    args = parse_args(["h", "put", str(source)])
    assert args.command is Command.PUT
    assert args.filename == str(source)
    with pytest.raises(CliError):
        parse_args(["h", "put", str(tmp_path / "missing.bin")])


@pytest.mark.parametrize("argv", [
    ["h"],
    [],
    ["-p", "70000", "h", "get", "f"],
    ["-b", "4", "h", "get", "f"],
    ["-t", "0", "h", "get", "f"],
    ["-w", "0", "h", "get", "f"],
    ["-r", "256", "h", "get", "f"],
    ["-l", "1.5", "h", "get", "f"],
    ["-t", "abc", "h", "get", "f"],
    ["-v", "loud", "h", "get", "f"],
    ["h", "get", "f", "-m", "mail"],
    ["h", "get"],
    ["h", "fetch", "f"],
])
def test_invalid_command_lines(argv):
    with pytest.raises(CliError):
        parse_args(argv)


def test_help_exits(capsys):
    with pytest.raises(SystemExit) as info:
        parse_args(["--help"])
    assert info.value.code == 0
    out = capsys.readouterr().out
    assert "Argument Types:" in out
    assert "(default: 6969)" in out


def test_root_footer_contents():
    parser = build_parser()
    footer = argument_types_footer(parser)
    assert footer.startswith("Argument Types:\n")
    assert "IPv4 or IPv6 address in standard format" in footer
    assert "Enum value in: {off, fatal, error, warn, info, debug, trace, all}" in footer
    assert "range [0, 65535]" in footer
    assert parser.epilog == footer


def test_subcommand_footers():
    parser = build_parser()
    footers = {sub.prog.split()[-1]: argument_types_footer(sub) for sub in parser.subcommands}
    assert "Path to the file" in footers["get"]
    assert "Path to an existing file" in footers["put"]
    assert "Enum value in: {netascii, octet}" in footers["list"]
    assert "PORT" not in footers["get"]


def test_footer_columns_are_aligned_across_parsers():
    parser = build_parser()
    columns = set()
    for each in (parser, *parser.subcommands):
        for line in argument_types_footer(each).splitlines()[1:]:
            match = re.match(r"^  (\S+)( +)\S", line)
            assert match is not None
            columns.add(2 + len(match.group(1)) + len(match.group(2)))
    assert len(columns) == 1
    assert columns.pop() > len("  -l,--loss-probability PROBABILITY")


def test_parse_error_carries_usage():
    with pytest.raises(CliError) as info:
        parse_args(["-p", "99999", "h", "get", "f"])
    assert "usage" in info.value.usage