import asyncio
import contextlib
import errno
import logging
import serial
import threading

import pydantic

from ok_serial_log import _exceptions
from ok_serial_log import _timeout_math

log = logging.getLogger("ok_serial_log.line_stream")
data_log = logging.getLogger(log.name + ".data")


class LineStreamOptions(pydantic.BaseModel):
    baud: int = pydantic.Field(default=9600, gt=0)
    exclusive: bool = True
    encoding: str = "utf-8"


class LineStream(contextlib.AbstractContextManager):
    """A serial port opened for reading newline-delimited text"""

    @pydantic.validate_call
    def __init__(self, port: str, opts: LineStreamOptions | int = LineStreamOptions()):
        if isinstance(opts, int):
            opts = LineStreamOptions(baud=opts)

        self._opts = opts
        with contextlib.ExitStack() as cleanup:
            log.debug("Opening %s (%s)", port, opts)
            try:
                pyserial = cleanup.enter_context(
                    serial.Serial(
                        port=port,
                        baudrate=opts.baud,
                        exclusive=True if opts.exclusive else None,
                    )
                )
            except OSError as ex:
                if ex.errno in (errno.EBUSY, errno.EAGAIN):
                    message = "Serial port busy"
                    raise _exceptions.LineStreamOpenBusy(message, port) from ex
                else:
                    message = "Serial port open error"
                    raise _exceptions.LineStreamOpenException(message, port) from ex

            self._io = cleanup.enter_context(_ReaderThread(pyserial))
            self._io.start()
            self._cleanup = cleanup.pop_all()

    def __del__(self) -> None:
        if hasattr(self, "_cleanup"):
            self._cleanup.close()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._cleanup.__exit__(exc_type, exc_value, traceback)

    def __repr__(self) -> str:
        return f"LineStream({self.port_name!r})"

    @property
    def port_name(self) -> str:
        return self._io.pyserial.port

    @property
    def baud(self) -> int:
        return self._opts.baud

    @pydantic.validate_call
    def close(self) -> None:
        self._cleanup.close()

    @pydantic.validate_call
    def read_line_sync(
        self, *, timeout: float | int | None = None
    ) -> str | None:
        """Returns the next complete line, or None if 'timeout' passes first"""

        deadline = _timeout_math.to_deadline(timeout)
        while True:
            with self._io.monitor:
                if isinstance(self._io.exception, _exceptions.LineStreamClosed):
                    raise self._io.exception
                elif (line := self._io.pop_line_locked()) is not None:
                    return line.decode(self._opts.encoding, errors="replace")
                elif self._io.exception:
                    raise self._io.exception
                else:
                    wait = _timeout_math.from_deadline(deadline)
                    if wait <= 0:
                        return None
                    self._io.monitor.wait(timeout=wait)

    async def read_line_async(self) -> str:
        while True:
            future = self._io.create_future_in_loop()  # BEFORE read_line_sync
            line = self.read_line_sync(timeout=0)
            if line is not None:
                return line
            await future

    @pydantic.validate_call
    def buffered_size(self) -> int:
        with self._io.monitor:
            return len(self._io.incoming)


class _ReaderThread(contextlib.AbstractContextManager):
    def __init__(self, pyserial: serial.Serial) -> None:
        self.thread: threading.Thread | None = None
        self.pyserial = pyserial
        self.monitor = threading.Condition()
        self.incoming = bytearray()
        self.exception: None | _exceptions.LineStreamIoException = None
        self.async_futures: list[asyncio.Future[None]] = []
        self.async_loop: asyncio.AbstractEventLoop | None
        try:
            self.async_loop = asyncio.get_running_loop()
        except RuntimeError:
            self.async_loop = None

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.stop()

    def start(self) -> None:
        port = self.pyserial.port
        self.thread = threading.Thread(
            target=self._readloop, name=f"{port} reader", daemon=True
        )
        self.thread.start()

    def stop(self) -> None:
        with self.monitor:
            if not isinstance(self.exception, _exceptions.LineStreamClosed):
                message, port = "Serial port was closed", self.pyserial.port
                self.exception = _exceptions.LineStreamClosed(message, port)
            self._notify_all_locked()

        try:
            self.pyserial.cancel_read()
            log.debug("Cancelled %s read", self.pyserial.port)
        except OSError:
            log.warning("Can't cancel %s read", self.pyserial.port, exc_info=True)

        if self.thread and self.thread is not threading.current_thread():
            log.debug("Joining %s reader thread", self.pyserial.port)
            self.thread.join()

    def pop_line_locked(self) -> bytes | None:
        """Must be run with self.monitor lock held."""

        end = self.incoming.find(b"\n")
        if end < 0:
            if self.exception and self.incoming:
                # the device is gone; its last partial line is all there is
                end = len(self.incoming)
            else:
                return None

        line = bytes(self.incoming[:end])
        del self.incoming[: end + 1]
        return line[:-1] if line.endswith(b"\r") else line

    def _readloop(self) -> None:
        log.debug("Starting thread")
        while not self.exception:
            incoming, error = b"", None
            try:
                # Block for at least one byte, then grab all available
                incoming = self.pyserial.read(size=1)
                if incoming:
                    waiting = self.pyserial.in_waiting
                    if waiting > 0:
                        incoming += self.pyserial.read(size=waiting)
            except OSError as ex:
                message, port = "Serial read error", self.pyserial.port
                error = _exceptions.LineStreamIoException(message, port)
                error.__cause__ = ex
                data_log.warning("%s", message, exc_info=True)

            with self.monitor:
                if incoming:
                    data_log.debug(
                        "Read %db buf=%db", len(incoming), len(self.incoming)
                    )
                if incoming or error:
                    self.incoming.extend(incoming)
                    self.exception = self.exception or error
                    self._notify_all_locked()

    def _notify_all_locked(self) -> None:
        """Must be run with self.monitor lock held."""

        self.monitor.notify_all()
        if self.async_futures:
            assert self.async_loop
            self.async_loop.call_soon_threadsafe(self._resolve_futures_in_loop)

    def create_future_in_loop(self) -> asyncio.Future[None]:
        """Must be run from asyncio event loop."""

        if not self.async_loop:
            self.async_loop = asyncio.get_running_loop()
        with self.monitor:
            future = self.async_loop.create_future()
            self.async_futures.append(future)
            data_log.debug(
                "%s: Adding async future -> %d total",
                self.pyserial.port,
                len(self.async_futures),
            )
            return future

    def _resolve_futures_in_loop(self) -> None:
        """Must be run from asyncio event loop."""

        with self.monitor:
            data_log.debug(
                "%s: Waking %d async futures",
                self.pyserial.port,
                len(self.async_futures),
            )
            while self.async_futures:
                f = self.async_futures.pop()
                if not f.done():
                    f.set_result(None)
