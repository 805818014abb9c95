import logging
import threading
import typing

from ok_serial_log import _exceptions
from ok_serial_log import _line_stream
from ok_serial_log import _log_store

log = logging.getLogger("ok_serial_log.ingress")


@typing.runtime_checkable
class LogTarget(typing.Protocol):
    device_id: str
    log_name: str


FinishedCallback = typing.Callable[[LogTarget, BaseException | None], None]


class IngressPipeline:
    """Moves lines from one LineStream into the LogStore on a dedicated thread.

    The destination is looked up from 'target.log_name' for every line, so
    it may be reassigned while the pipeline runs. The pipeline never closes
    the stream; if the stream ends without stop() having been called, the
    owner is told via 'on_finished(target, error)' and must clean up.
    """

    def __init__(
        self,
        target: LogTarget,
        stream: _line_stream.LineStream,
        store: _log_store.LogStore,
        on_finished: FinishedCallback,
    ):
        self._target = target
        self._stream = stream
        self._store = store
        self._on_finished = on_finished
        self._stopping = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"{target.device_id} ingress", daemon=True
        )
        self.lines_logged = 0

    def __repr__(self) -> str:
        return f"IngressPipeline({self._target.device_id!r})"

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Marks the pipeline as stopping; it exits once the stream is closed."""
        self._stopping.set()

    def join(self, timeout: float | int | None = None) -> None:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        device = self._target.device_id
        log.debug("%s: Ingress started", device)
        error: BaseException | None = None
        try:
            while not self._stopping.is_set():
                line = self._stream.read_line_sync()
                if line is None:
                    continue
                self._store.append(self._target.log_name, line)
                self.lines_logged += 1
        except _exceptions.LineStreamClosed:
            log.debug("%s: Stream closed", device)
        except _exceptions.LineStreamIoException as exc:
            log.warning("%s: Device failed (%s)", device, exc)
            error = exc
        except OSError as exc:
            log.warning("%s: Can't write log (%s)", device, exc, exc_info=True)
            error = exc

        log.debug("%s: Ingress ended after %d lines", device, self.lines_logged)
        if not self._stopping.is_set():
            self._on_finished(self._target, error)
