"""
Serial port logger: per-device sessions streaming lines into
append-only log files, with an HTTP API for polling clients.
"""

from beartype.claw import beartype_this_package as _beartype_me

# ruff: noqa: E402
_beartype_me()

from ok_serial_log._config import ServerOptions

from ok_serial_log._exceptions import (
    AlreadyOpenError,
    CloseError,
    DeviceUnavailableError,
    InvalidNameError,
    LineStreamClosed,
    LineStreamException,
    LineStreamIoException,
    LineStreamOpenBusy,
    LineStreamOpenException,
    MissingFieldError,
    NotOpenError,
    PortScanException,
    SessionException,
)

from ok_serial_log._ingress import IngressPipeline
from ok_serial_log._line_stream import LineStream, LineStreamOptions
from ok_serial_log._log_store import LogStore, default_name, normalize_name
from ok_serial_log._manager import SessionManager
from ok_serial_log._registry import Session, SessionInfo, SessionRegistry
from ok_serial_log._scanning import SerialPort, scan_serial_ports
from ok_serial_log._status import SessionStatus, StatusView
from ok_serial_log.server import create_app

__all__ = [n for n in dir() if not n.startswith("_")]
