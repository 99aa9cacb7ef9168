import pytest

from tftpkit.client_options import (
    ClientOptions,
    RequestType,
    UnrequestedOptionError,
    build_request_options,
    packet_buffer_size,
    parse_oack,
)
from tftpkit.packets import (
    DATA_HEADER_SIZE,
    DEFAULT_BLKSIZE,
    DEFAULT_WINDOW_SIZE,
    OACK_PACKET_MAX_SIZE,
    Option,
)


def test_no_options_uses_defaults():
    result = build_request_options(None, RequestType.GET)
    assert result.timeout_s == 2
    assert result.block_size == DEFAULT_BLKSIZE
    assert result.window_size == DEFAULT_WINDOW_SIZE
    assert result.options == {}
    assert result.use_options is False


def test_all_options_requested_for_get():
    opts = ClientOptions(timeout_s=5, block_size=1024, window_size=4, use_tsize=True)
    result = build_request_options(opts, RequestType.GET)
    assert result.options == {
        Option.BLKSIZE: "1024",
        Option.TIMEOUT: "5",
        Option.TSIZE: "0",
        Option.WINDOWSIZE: "4",
    }
    assert result.use_options is True
    assert (result.timeout_s, result.block_size, result.window_size) == (5, 1024, 4)
    assert list(result.options) == sorted(result.options)


def test_put_does_not_send_window_size():
    result = build_request_options(ClientOptions(window_size=4), RequestType.PUT)
    assert Option.WINDOWSIZE not in result.options
    assert result.window_size == 4
    assert result.use_options is False


def test_list_requests_directory_read_type():
    result = build_request_options(None, RequestType.LIST)
    assert result.options == {Option.READ_TYPE: "directory"}
    assert result.use_options is True


def test_adaptive_timeout_replaces_numeric_timeout():
    result = build_request_options(ClientOptions(timeout_s=5, use_adaptive_timeout=True), RequestType.GET)
    assert result.options[Option.TIMEOUT] == "adaptive"
    assert result.use_adaptive_timeout is True
    assert result.timeout_s == 5


@pytest.mark.parametrize("block_size", [0, 7, 65465])
def test_block_size_out_of_range_is_ignored(block_size):
    result = build_request_options(ClientOptions(block_size=block_size), RequestType.GET)
    assert result.block_size == DEFAULT_BLKSIZE
    assert Option.BLKSIZE not in result.options


@pytest.mark.parametrize("block_size", [8, 65464])
def test_block_size_range_limits_are_accepted(block_size):
    result = build_request_options(ClientOptions(block_size=block_size), RequestType.GET)
    assert result.block_size == block_size
    assert result.options[Option.BLKSIZE] == str(block_size)


def test_zero_timeout_means_default():
    result = build_request_options(ClientOptions(timeout_s=0), RequestType.GET)
    assert result.timeout_s == 2
    assert Option.TIMEOUT not in result.options


def test_options_str_lists_active_options():
    result = build_request_options(ClientOptions(block_size=1024), RequestType.GET)
    assert result.options_str == "blksize=1024"


def test_packet_buffer_size():
    assert packet_buffer_size(DEFAULT_BLKSIZE) == 516
    assert packet_buffer_size(8) == OACK_PACKET_MAX_SIZE
    for size in (1024, 65464):
        assert packet_buffer_size(size) == size + DATA_HEADER_SIZE


def test_oack_sets_block_size():
    request = build_request_options(ClientOptions(block_size=1024), RequestType.GET)
    result = parse_oack(request, b"blksize\x001024\x00")
    assert result.block_size == 1024
    assert result.options == {Option.BLKSIZE: "1024"}
    assert result.formatted == "blksize=1024"


def test_oack_with_unrequested_option_raises():
    request = build_request_options(ClientOptions(timeout_s=5), RequestType.GET)
    with pytest.raises(UnrequestedOptionError):
        parse_oack(request, b"blksize\x001024\x00")


def test_oack_empty_keeps_request_values():
    request = build_request_options(ClientOptions(timeout_s=5, block_size=1024, window_size=4), RequestType.GET)
    result = parse_oack(request, b"")
    assert (result.block_size, result.timeout_s, result.window_size) == (1024, 5, 4)
    assert result.options == {}


def test_oack_adaptive_timeout_accepted_case_insensitively():
    request = build_request_options(ClientOptions(timeout_s=5, use_adaptive_timeout=True), RequestType.GET)
    result = parse_oack(request, b"TIMEOUT\x00Adaptive\x00")
    assert result.use_adaptive_timeout is True
    assert result.options[Option.TIMEOUT] == "adaptive"
    assert result.timeout_s == 5


def test_oack_without_adaptive_timeout_turns_it_off():
    request = build_request_options(ClientOptions(use_tsize=True, use_adaptive_timeout=True), RequestType.GET)
    result = parse_oack(request, b"tsize\x001234\x00")
    assert result.use_adaptive_timeout is False
    assert result.tsize == 1234


def test_oack_numeric_timeout_and_window_size():
    request = build_request_options(ClientOptions(timeout_s=5, window_size=4), RequestType.GET)
    result = parse_oack(request, b"timeout\x007\x00windowsize\x008\x00")
    assert result.timeout_s == 7
    assert result.window_size == 8


def test_oack_ignores_unknown_and_incomplete_pairs():
    request = build_request_options(ClientOptions(block_size=1024), RequestType.GET)
    result = parse_oack(request, b"foo\x00bar\x00blksize\x00600\x00windowsize")
    assert result.options == {Option.BLKSIZE: "600"}
    assert result.block_size == 600


def test_oack_read_type_for_list_is_accepted():
    request = build_request_options(None, RequestType.LIST)
    result = parse_oack(request, b"read_type\x00directory\x00")
    assert result.options == {Option.READ_TYPE: "directory"}
    assert result.block_size == request.block_size