import contextlib
import io
import json
import ok_logging_setup
import os
import pty
import pytest
import time
import typing

import ok_serial_log

ok_logging_setup.install(
    {
        "OK_LOGGING_LEVEL": "ok_serial_log=DEBUG,WARNING",
        "OK_LOGGING_OUTPUT": "stdout",
    }
)


class PseudoTtySerial(typing.NamedTuple):
    path: str
    control: io.FileIO
    simulated: io.FileIO


@pytest.fixture
def pty_serial():
    with contextlib.ExitStack() as cleanup:
        ctrl_fd, sim_fd = pty.openpty()
        path = os.ttyname(sim_fd)
        ctrl = cleanup.enter_context(os.fdopen(ctrl_fd, "r+b", buffering=0))
        sim = cleanup.enter_context(os.fdopen(sim_fd, "r+b", buffering=0))
        yield PseudoTtySerial(path=path, control=ctrl, simulated=sim)


@pytest.fixture
def set_scan_override(monkeypatch, tmp_path):
    path = tmp_path / "scan.json"
    path.write_text("{}")
    monkeypatch.setenv("OK_SERIAL_LOG_SCAN_OVERRIDE", str(path))

    def set_ports(ports: dict[str, dict[str, str]]):
        path.write_text(json.dumps(ports))

    return set_ports


@pytest.fixture
def store(tmp_path):
    return ok_serial_log.LogStore(tmp_path / "logs")


@pytest.fixture
def registry(store):
    with ok_serial_log.SessionRegistry(store) as registry:
        yield registry


def wait_until(predicate, timeout=5.0):
    """Polls 'predicate' until it returns truthy; fails the test on timeout"""

    deadline = time.monotonic() + timeout
    while not (result := predicate()):
        if time.monotonic() > deadline:
            pytest.fail(f"Timed out waiting for {predicate}")
        time.sleep(0.01)
    return result
