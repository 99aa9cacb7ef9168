"""The TFTP client command: download, upload and list files on a server."""

from __future__ import annotations

import os
import shutil
import sys
import tempfile
from typing import BinaryIO, Optional, Sequence

from .cli import CliError, Command, parse_args
from .client_options import ClientOptions
from .logger import Logger, LoggerConfig
from .packet_loss import PacketLoss
from .packets import Mode
from .session import TransferError
from .stats import ClientStats
from .transfer import TftpClient

_UNIT_PREFIXES = ("", "K", "M", "G", "T", "P", "E", "Z", "Y")
_UNIT_STEP = 1000
_BITS_PER_BYTE = 8


def _failure(message: str, server_may_not_support_options: bool = False) -> TransferError:
    error = TransferError(message)
    error.server_may_not_support_options = server_may_not_support_options
    return error


def format_stats(stats: ClientStats) -> str:
    """Describe how many bytes were received, how long it took and how fast."""
    duration = stats.duration()
    received = stats.file_bytes_received
    if duration > 0:
        byte_speed = received / duration
    else:
        byte_speed = float("inf") if received else 0.0
    bit_speed = byte_speed * _BITS_PER_BYTE
    display_speed = byte_speed
    prefix_index = 0
    while display_speed > _UNIT_STEP and prefix_index < len(_UNIT_PREFIXES) - 1:
        display_speed /= _UNIT_STEP
        prefix_index += 1
    return "Received %d bytes in %.3f seconds [%.2f %sB/s, %.0f bit/s]" % (
        received, duration, display_speed, _UNIT_PREFIXES[prefix_index], bit_speed)


def print_stats(stats: ClientStats) -> None:
    """Stop the transfer clock and log the transfer summary."""
    stats.stop()
    if not stats.enabled or stats.logger is None:
        return
    stats.logger.info("%s", format_stats(stats))


def copy_file_contents(dest: BinaryIO, src: BinaryIO) -> int:
    """Copy everything written to src so far into dest; return the byte count."""
    src.flush()
    size = src.tell()
    src.seek(0)
    remaining = size
    while remaining > 0:
        chunk = src.read(min(remaining, 1 << 16))
        if not chunk:
            raise OSError("source file ended before its recorded size")
        dest.write(chunk)
        remaining -= len(chunk)
    dest.flush()
    return size


def download(client: TftpClient, host: str, port, filename: str, mode: Mode,
             options: Optional[ClientOptions], output_path: Optional[str] = None) -> None:
    """Fetch filename into output_path (default: filename).

    The file is received into a temporary file first, so the output is only
    written once the transfer has succeeded. A newly created output file is
    removed again on failure. Raises TransferError.
    """
    logger = client.logger
    path = output_path if output_path is not None else filename
    fd: Optional[int] = None
    try:
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_EXCL, 0o600)
        already_existed = False
    except FileExistsError:
        already_existed = True
    except OSError as exc:
        logger.error("Could not open file %s for writing. %s", path, exc)
        raise _failure(f"could not open {path} for writing: {exc}") from exc
    try:
        output = open(path, "wb") if already_existed else os.fdopen(fd, "wb")
    except OSError as exc:
        if fd is not None:
            os.close(fd)
        logger.error("Could not open file %s for writing. %s", path, exc)
        raise _failure(f"could not open {path} for writing: {exc}") from exc

    try:
        with output:
            try:
                tmp = tempfile.TemporaryFile()
            except OSError as exc:
                logger.error("Could not create temporary file. %s", exc)
                raise _failure(f"could not create temporary file: {exc}") from exc
            with tmp:
                client.get(host, port, filename, mode, options, tmp)
                try:
                    copy_file_contents(output, tmp)
                except OSError as exc:
                    logger.error("Failed to copy the temporary file contents into the output file.")
                    raise _failure(f"could not copy into {path}: {exc}") from exc
    except TransferError:
        if not already_existed:
            try:
                os.remove(path)
            except OSError as exc:
                logger.warn("Failed to remove the output file. %s", exc)
        raise


def upload(client: TftpClient, host: str, port, filename: str, mode: Mode,
           options: Optional[ClientOptions], input_path: Optional[str] = None) -> None:
    """Send input_path (default: filename) to the server as filename. Raises TransferError."""
    path = input_path if input_path is not None else filename
    try:
        source = open(path, "rb")
    except OSError as exc:
        client.logger.error("Could not open file %s for reading. %s", path, exc)
        raise _failure(f"could not open {path} for reading: {exc}") from exc
    with source:
        client.put(host, port, filename, mode, options, source)


def _run_command(args, client: TftpClient, options: Optional[ClientOptions]) -> None:
    if args.command is Command.LIST:
        dest = sys.stdout.buffer
        client.list(args.host, args.port, args.directory, args.mode, args.options, dest)
        dest.flush()
    elif args.command is Command.GET:
        download(client, args.host, args.port, args.filename, args.mode, options, args.output)
    else:
        upload(client, args.host, args.port, args.filename, args.mode, options, None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the client command line; return the process exit status."""
    try:
        args = parse_args(argv)
    except CliError as exc:
        if exc.usage:
            sys.stderr.write(exc.usage)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    logger = Logger(LoggerConfig(default_level=args.verbose_level))
    loss = PacketLoss(args.loss_probability, logger)
    client = TftpClient(logger=logger, retries=args.retries,
                        stats_callback=print_stats, socket_wrapper=loss.wrap)
    for is_retry in (False, True):
        if is_retry:
            logger.warn("Server may not support options. Retrying without options.")
        options = None if is_retry else args.options
        try:
            _run_command(args, client, options)
        except TransferError as exc:
            may_retry = getattr(exc, "server_may_not_support_options", False)
            if is_retry or args.command is Command.LIST or not may_retry:
                return 1
            continue
        break
    logger.debug("Closing connection.")
    return 0


if __name__ == "__main__":
    sys.exit(main())