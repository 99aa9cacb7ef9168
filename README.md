# tftpkit

A Trivial File Transfer Protocol client for the command line and for Python code.

It downloads files from a TFTP server and uploads files to one. It can also ask a
server for a directory listing, using a `read_type=directory` request option that
the server has to understand. It can negotiate the `blksize`, `timeout` (a number of
seconds, or `adaptive`), `tsize` and `windowsize` options. When a download or upload
fails in a way that suggests the server does not understand options (a timeout or an
error in answer to the first request), the client tries once more without them.

## Installation

```
pip install .
```

Python 3.10 or newer is needed. The package has no runtime dependencies.

## Command line

```
tftpkit HOST [options] get FILENAME [-m MODE] [-o OUTPUT_FILE]
tftpkit HOST [options] put FILENAME [-m MODE]
tftpkit HOST [options] list [DIRECTORY] [-m MODE]
```

Options that apply to every command (they may also be given after the command):

| Option | Meaning | Default |
|---|---|---|
| `-p, --port PORT` | server port (0–65535) | `6969` |
| `-r, --retries RETRIES` | retransmissions before giving up (0–255) | `3` |
| `-t, --timeout SECONDS` | ask for this timeout (1–255) | not requested |
| `-b, --block-size BLOCK_SIZE` | ask for this block size (8–65464) | not requested |
| `-w, --window-size WINDOW_SIZE` | ask for this window size (1–65535); not sent with `put` | not requested |
| `-a, --adaptive-timeout` | ask for an adaptive timeout | off |
| `--use-tsize` | ask the server for the file size and check it after a download | off |
| `-l, --loss-probability PROBABILITY` | drop this share of packets, for testing (0.0–1.0) | `0.0` |
| `-v, --log-level LEVEL` | `off`, `fatal`, `error`, `warn`, `info`, `debug`, `trace` or `all` | `info` |

`MODE` is `octet` (the default) or `netascii`. `put` requires `FILENAME` to be an
existing local file; `list` defaults to the directory `.` and writes the listing to
standard output. Log messages go to standard error. The command exits with status 0
on success and 1 on failure.

The following downloads `boot.img` from a server on the local machine with 1428-byte blocks:

```
tftpkit ::1 -b 1428 get boot.img -o local.img
```

A download is received into a temporary file and copied into the output file
(`-o`, or `FILENAME` by default) only once the transfer has succeeded. If the output
file did not exist before and the transfer fails, it is removed again. An output file
that already exists is opened for writing, and so emptied, before the transfer starts.

## Library use

```python
from tftpkit.client_options import ClientOptions
from tftpkit.logger import Logger, LoggerConfig, LogLevel
from tftpkit.packets import Mode
from tftpkit.session import TransferError
from tftpkit.transfer import TftpClient

logger = Logger(LoggerConfig(default_level=LogLevel.INFO))
client = TftpClient(logger, retries=3, stats_callback=None, socket_wrapper=None)

try:
    with open("boot.img", "wb") as dest:
        client.get("::1", "6969", "boot.img", Mode.OCTET,
                   ClientOptions(block_size=1428), dest)
except TransferError as exc:
    print("failed; retry without options:", exc.server_may_not_support_options)
```

`TftpClient.put` takes a file open for reading in place of `dest`, and
`TftpClient.list` takes a directory name in place of the file name. Every operation
raises `TransferError` on failure.

`stats_callback` is called with a `tftpkit.stats.ClientStats` once a transfer is
done; `tftpkit.app.print_stats` logs a line such as
`Received 1048576 bytes in 0.512 seconds [2.05 MB/s, 16384000 bit/s]`.
`tftpkit.app.download` and `tftpkit.app.upload` are the file-handling helpers the
command uses.

The packet codec is in `tftpkit.packets`: `encode_rrq`, `encode_wrq`, `encode_data`,
`encode_ack`, `encode_error`, `default_error_packet`, `decode_data`, `decode_ack`,
`decode_error`, `get_opcode`, `parse_options` and `format_options`.

`tftpkit.packet_loss.PacketLoss` wraps a socket (`PacketLoss.wrap`, or pass it as
`socket_wrapper`) so that sent and received packets are dropped at random, from a
generator with a fixed seed. Use it to see how a transfer copes with an unreliable
network.

## What this package does not do

There is no TFTP server here: the package is a client only, and needs a server to
talk to. Uploads do not negotiate a window size.

## Tests

```
pip install .[test]
pytest
```