import natsort
import typing

from ok_serial_log import _registry


class SessionStatus(typing.NamedTuple):
    device_id: str | None
    log_name: str
    baud: int | None
    connected: bool


class StatusView:
    """Point-in-time view of open sessions, safe to poll from any thread.

    With no open sessions and a default log name configured, the view
    reports one disconnected placeholder entry for that log, which is what
    single-session clients expect to see.
    """

    def __init__(
        self,
        registry: _registry.SessionRegistry,
        default_log_name: str | None = None,
    ):
        self._registry = registry
        self.default_log_name = default_log_name

    def snapshot(self) -> list[SessionStatus]:
        infos = natsort.natsorted(self._registry.describe(), key=lambda i: i.device_id)
        if not infos and self.default_log_name:
            return [SessionStatus(None, self.default_log_name, None, False)]
        return [SessionStatus(i.device_id, i.log_name, i.baud, True) for i in infos]

    def active_ports(self) -> list[str]:
        return [s.device_id for s in self.snapshot() if s.connected and s.device_id]
