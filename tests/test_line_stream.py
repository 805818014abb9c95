"""Unit tests for ok_serial_log._line_stream."""

import asyncio
import termios
import threading
import time
import pytest

import ok_serial_log
from ok_serial_log import _exceptions

#
# Basic smoke test
#


def test_basic_lines(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path, 57600) as stream:
        tcattr = termios.tcgetattr(pty_serial.simulated.fileno())
        iflag, oflag, cflag, lflag, ispeed, ospeed, cc = tcattr
        assert ispeed == termios.B57600
        assert stream.baud == 57600
        assert stream.port_name == pty_serial.path

        pty_serial.control.write(b"FIRST LINE\r\nSECOND\n")
        assert stream.read_line_sync(timeout=10) == "FIRST LINE"
        assert stream.read_line_sync(timeout=10) == "SECOND"


def test_options_object(pty_serial):
    opts = ok_serial_log.LineStreamOptions(baud=19200, encoding="latin-1")
    with ok_serial_log.LineStream(pty_serial.path, opts) as stream:
        pty_serial.control.write(b"caf\xe9\n")
        assert stream.read_line_sync(timeout=10) == "café"


def test_bad_bytes_are_replaced(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pty_serial.control.write(b"ok \xff\xfe\n")
        assert stream.read_line_sync(timeout=10) == "ok ��"


def test_line_split_across_writes(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pty_serial.control.write(b"PART")
        assert stream.read_line_sync(timeout=0.1) is None
        pty_serial.control.write(b"IAL\r\n")
        assert stream.read_line_sync(timeout=10) == "PARTIAL"


def test_empty_lines_are_kept(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pty_serial.control.write(b"\r\n\nX\n")
        assert stream.read_line_sync(timeout=10) == ""
        assert stream.read_line_sync(timeout=10) == ""
        assert stream.read_line_sync(timeout=10) == "X"


#
# Opening errors
#


def test_open_missing_port(tmp_path):
    with pytest.raises(_exceptions.LineStreamOpenException):
        ok_serial_log.LineStream(str(tmp_path / "no-such-tty"))


def test_open_exclusive_port_twice(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path):
        with pytest.raises(_exceptions.LineStreamOpenBusy):
            ok_serial_log.LineStream(pty_serial.path)


def test_bad_baud_rejected(pty_serial):
    with pytest.raises(ValueError):
        ok_serial_log.LineStream(pty_serial.path, 0)


#
# Async I/O tests
#


async def test_async_read_basic(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path, 115200) as stream:
        pty_serial.control.write(b"ASYNC TEST\n")
        assert await stream.read_line_async() == "ASYNC TEST"


async def test_async_read_waits_for_newline(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path, 115200) as stream:

        async def delayed_write():
            await asyncio.sleep(0.02)
            pty_serial.control.write(b"PART1")
            await asyncio.sleep(0.02)
            pty_serial.control.write(b"PART2\n")

        write_task = asyncio.create_task(delayed_write())
        line = await asyncio.wait_for(stream.read_line_async(), timeout=5)
        assert line == "PART1PART2"
        await write_task


async def test_async_read_after_close_raises(pty_serial):
    stream = ok_serial_log.LineStream(pty_serial.path)
    stream.close()

    with pytest.raises(_exceptions.LineStreamClosed):
        await stream.read_line_async()


#
# Timeouts
#


def test_read_timeout_empty_buffer(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        start = time.monotonic()
        assert stream.read_line_sync(timeout=0.1) is None
        elapsed = time.monotonic() - start
        assert 0.05 <= elapsed <= 0.5


@pytest.mark.parametrize("timeout", [0, -1])
def test_read_zero_or_negative_timeout(pty_serial, timeout):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        start = time.monotonic()
        assert stream.read_line_sync(timeout=timeout) is None
        assert time.monotonic() - start < 0.1


def test_read_integer_timeout(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pty_serial.control.write(b"whole seconds\n")
        assert stream.read_line_sync(timeout=5) == "whole seconds"
        assert stream.read_line_sync(timeout=0) is None


def test_buffered_size_tracks_partial_line(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        assert stream.buffered_size() == 0
        pty_serial.control.write(b"12345")
        deadline = time.monotonic() + 5
        while stream.buffered_size() < 5 and time.monotonic() < deadline:
            stream.read_line_sync(timeout=0.01)
        assert stream.buffered_size() == 5


#
# Close, EOF and exception handling
#


def test_read_after_close_raises(pty_serial):
    stream = ok_serial_log.LineStream(pty_serial.path)
    stream.close()

    with pytest.raises(_exceptions.LineStreamClosed):
        stream.read_line_sync(timeout=1.0)


def test_close_drops_buffered_lines(pty_serial):
    stream = ok_serial_log.LineStream(pty_serial.path)
    pty_serial.control.write(b"UNREAD\n")
    deadline = time.monotonic() + 5
    while stream.buffered_size() < 7 and time.monotonic() < deadline:
        time.sleep(0.01)
    stream.close()

    with pytest.raises(_exceptions.LineStreamClosed):
        stream.read_line_sync(timeout=0)


def test_context_manager_closes_on_exit(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pass

    with pytest.raises(_exceptions.LineStreamClosed):
        stream.read_line_sync(timeout=0.1)


def test_multiple_close_is_safe(pty_serial):
    stream = ok_serial_log.LineStream(pty_serial.path)
    stream.close()
    stream.close()
    stream.close()


def test_device_loss_delivers_remaining_lines(pty_serial):
    with ok_serial_log.LineStream(pty_serial.path) as stream:
        pty_serial.control.write(b"LAST\nTAIL")
        assert stream.read_line_sync(timeout=10) == "LAST"
        deadline = time.monotonic() + 5
        while stream.buffered_size() < 4 and time.monotonic() < deadline:
            time.sleep(0.01)
        pty_serial.control.close()

        assert stream.read_line_sync(timeout=10) == "TAIL"
        with pytest.raises(_exceptions.LineStreamIoException) as info:
            stream.read_line_sync(timeout=10)
        assert not isinstance(info.value, _exceptions.LineStreamClosed)


def test_close_wakes_blocked_reader(pty_serial):
    stream = ok_serial_log.LineStream(pty_serial.path)
    errors = []

    def reader():
        try:
            stream.read_line_sync()
        except Exception as e:
            errors.append(e)

    thread = threading.Thread(target=reader)
    thread.start()
    time.sleep(0.05)
    stream.close()
    thread.join(timeout=5.0)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert isinstance(errors[0], _exceptions.LineStreamClosed)
