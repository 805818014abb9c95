import contextlib
import logging
import pathlib

from ok_serial_log import _config
from ok_serial_log import _log_store
from ok_serial_log import _registry
from ok_serial_log import _status

log = logging.getLogger("ok_serial_log.manager")


class SessionManager(contextlib.AbstractContextManager):
    """The log store, session registry and status view of one server"""

    def __init__(
        self,
        log_dir: pathlib.Path | str,
        *,
        default_log_name: str | None = None,
    ):
        self.store = _log_store.LogStore(log_dir)
        self.registry = _registry.SessionRegistry(self.store)
        if default_log_name:
            default_log_name = _log_store.normalize_name(default_log_name)
        self.status = _status.StatusView(self.registry, default_log_name)

    @classmethod
    def from_options(cls, opts: _config.ServerOptions) -> "SessionManager":
        default = opts.default_log_name or _log_store.default_name()
        return cls(opts.log_dir, default_log_name=default)

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.registry.close_all()

    def __repr__(self) -> str:
        return f"SessionManager({self.store!r}, {self.registry!r})"

    def open(self, device_id: str, baud: int, log_name: str) -> _registry.Session:
        return self.registry.open(device_id, baud, log_name)

    def close(self, device_id: str) -> bool:
        return self.registry.close(device_id)

    def set_log_name(self, device_id: str, name: str) -> str:
        return self.registry.set_log_name(device_id, name)

    def inject(self, name: str, text: str) -> None:
        """Logs 'text' to 'name' as if a device had sent it"""

        self.store.append(name, text)
        log.debug("Injected into %s: %s", name, text)

    def read(self, name: str) -> str:
        return self.store.read_all(name)

    def snapshot(self) -> list[_status.SessionStatus]:
        return self.status.snapshot()
