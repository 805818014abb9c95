import dataclasses
import json
import logging
import natsort
import os
import pathlib
from serial.tools import list_ports
from serial.tools import list_ports_common

from ok_serial_log import _exceptions

log = logging.getLogger("ok_serial_log.scanning")


@dataclasses.dataclass(frozen=True)
class SerialPort:
    """What we know about a potentially available serial port on the system"""

    name: str
    attr: dict[str, str]

    def __str__(self):
        return self.name

    @property
    def manufacturer(self) -> str | None:
        return self.attr.get("manufacturer")

    @property
    def description(self) -> str | None:
        return self.attr.get("description")

    def descriptor(self) -> dict[str, str]:
        """The port as listed to HTTP clients: path, plus any known labels"""

        out = {"path": self.name}
        for key in ("manufacturer", "description"):
            if value := self.attr.get(key):
                out[key] = value
        return out

    def matches(self, words: list[str]) -> bool:
        """True if every word appears (case-insensitively) in some attribute"""

        values = [self.name.lower(), *(v.lower() for v in self.attr.values())]
        return all(any(w.lower() in v for v in values) for w in words)


def scan_serial_ports() -> list[SerialPort]:
    """Returns a list of serial ports found on the current system"""

    if ov := os.getenv("OK_SERIAL_LOG_SCAN_OVERRIDE"):
        try:
            ov_data = json.loads(pathlib.Path(ov).read_text())
            if not isinstance(ov_data, dict) or not all(
                isinstance(attr, dict)
                and all(isinstance(aval, str) for aval in attr.values())
                for attr in ov_data.values()
            ):
                raise ValueError("Override data is not a dict of dicts")
        except (OSError, ValueError) as ex:
            msg = f"Can't read $OK_SERIAL_LOG_SCAN_OVERRIDE {ov}"
            raise _exceptions.PortScanException(msg) from ex

        out = [SerialPort(name=p, attr=a) for p, a in ov_data.items()]
        log.debug("$OK_SERIAL_LOG_SCAN_OVERRIDE (%s): %d ports", ov, len(out))
    else:
        try:
            ports = list_ports.comports()
        except OSError as ex:
            raise _exceptions.PortScanException("Can't scan serial") from ex

        out = [_convert_port(p) for p in ports]

    out.sort(key=natsort.natsort_keygen(key=lambda p: p.name, alg=natsort.ns.P))
    log.debug("Found %d ports", len(out))
    return out


def _convert_port(p: list_ports_common.ListPortInfo) -> SerialPort:
    _NA = (None, "", "n/a")
    attr = {k.lower(): str(v) for k, v in vars(p).items() if v not in _NA}
    return SerialPort(name=p.device, attr=attr)
