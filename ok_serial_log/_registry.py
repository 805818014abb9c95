import contextlib
import datetime
import logging
import threading
import typing

import pydantic

from ok_serial_log import _exceptions
from ok_serial_log import _ingress
from ok_serial_log import _line_stream
from ok_serial_log import _log_store

log = logging.getLogger("ok_serial_log.registry")


class SessionInfo(typing.NamedTuple):
    """Handle-free copy of one registry entry"""

    device_id: str
    log_name: str
    baud: int
    opened_at: datetime.datetime


class Session:
    """One open device, the log it feeds, and the thread feeding it"""

    def __init__(self, device_id: str, baud: int, log_name: str):
        self.device_id = device_id
        self.baud = baud
        self.log_name = log_name
        self.opened_at = datetime.datetime.now(datetime.timezone.utc)
        self._stream: _line_stream.LineStream | None = None
        self._pipeline: _ingress.IngressPipeline | None = None

    def __repr__(self) -> str:
        return f"Session({self.device_id!r}, log_name={self.log_name!r})"

    def info(self) -> SessionInfo:
        return SessionInfo(
            device_id=self.device_id,
            log_name=self.log_name,
            baud=self.baud,
            opened_at=self.opened_at,
        )


class SessionRegistry(contextlib.AbstractContextManager):
    """Owns every open Session, at most one per device id.

    All registry state is guarded by one lock, which is never held across
    device I/O. Sessions also end on their own when the device fails; the
    ingress thread reports that back here and the entry is dropped.
    """

    def __init__(
        self,
        store: _log_store.LogStore,
        *,
        stream_opts: _line_stream.LineStreamOptions = _line_stream.LineStreamOptions(),
    ):
        self._store = store
        self._stream_opts = stream_opts
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._opening: set[str] = set()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close_all()

    def __repr__(self) -> str:
        with self._lock:
            return f"SessionRegistry({sorted(self._sessions)!r})"

    @pydantic.validate_call
    def open(self, device_id: str, baud: int, log_name: str) -> Session:
        missing = [n for n, v in (("path", device_id), ("logName", log_name)) if not v]
        if missing:
            raise _exceptions.MissingFieldError(*missing)

        log_name = _log_store.normalize_name(log_name)
        opts = _line_stream.LineStreamOptions(
            **{**self._stream_opts.model_dump(), "baud": baud}
        )

        with self._lock:
            if device_id in self._sessions or device_id in self._opening:
                message = "Port is already in use"
                raise _exceptions.AlreadyOpenError(message, device_id)
            self._opening.add(device_id)

        session = Session(device_id=device_id, baud=baud, log_name=log_name)
        try:
            try:
                stream = _line_stream.LineStream(device_id, opts)
            except _exceptions.LineStreamOpenException as ex:
                message = str(ex.__cause__ or ex)
                raise _exceptions.DeviceUnavailableError(message, device_id) from ex

            # the log file only appears once the device is really open
            try:
                self._store.ensure(log_name)
            except BaseException:
                stream.close()
                raise
            session._stream = stream
        finally:
            with self._lock:
                self._opening.discard(device_id)
                if session._stream:
                    session._pipeline = _ingress.IngressPipeline(
                        session, session._stream, self._store, self._pipeline_finished
                    )
                    self._sessions[device_id] = session
                    session._pipeline.start()

        log.info("Opened %s (%d baud) -> %s", device_id, baud, log_name)
        return session

    @pydantic.validate_call
    def close(self, device_id: str) -> bool:
        """Closes the session for 'device_id'; False if there was none"""

        with self._lock:
            session = self._sessions.pop(device_id, None)
        if session is None:
            log.debug("%s: Not open, nothing to close", device_id)
            return False

        self._shutdown(session)
        log.info("Closed %s", device_id)
        return True

    @pydantic.validate_call
    def set_log_name(self, device_id: str, name: str) -> str:
        name = _log_store.normalize_name(name)
        if self.get(device_id) is None:
            raise _exceptions.NotOpenError("Port is not open", device_id)

        self._store.ensure(name)
        with self._lock:
            if (session := self._sessions.get(device_id)) is None:
                raise _exceptions.NotOpenError("Port is not open", device_id)
            old_name, session.log_name = session.log_name, name
        log.info("%s: Logging to %s (was %s)", device_id, name, old_name)
        return name

    def get(self, device_id: str) -> SessionInfo | None:
        with self._lock:
            session = self._sessions.get(device_id)
            return session.info() if session else None

    def describe(self) -> list[SessionInfo]:
        with self._lock:
            return [s.info() for s in self._sessions.values()]

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            try:
                self._shutdown(session)
            except _exceptions.CloseError as exc:
                log.warning("%s", exc)

    def _shutdown(self, session: Session) -> None:
        assert session._stream and session._pipeline
        session._pipeline.stop()
        try:
            session._stream.close()
        except OSError as ex:
            message = f"Close error ({ex})"
            raise _exceptions.CloseError(message, session.device_id) from ex
        finally:
            session._pipeline.join()

    def _pipeline_finished(
        self, session: _ingress.LogTarget, error: BaseException | None
    ) -> None:
        """Runs on the ingress thread when a session ends without close()"""

        with self._lock:
            if self._sessions.get(session.device_id) is not session:
                return
            del self._sessions[session.device_id]

        log.warning("%s: Session ended (%s)", session.device_id, error or "EOF")
        assert isinstance(session, Session) and session._stream
        try:
            session._stream.close()
        except OSError:
            log.warning("Can't close %s", session.device_id, exc_info=True)
