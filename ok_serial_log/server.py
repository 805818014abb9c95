"""HTTP API and polling UI for ok_serial_log (FastAPI)"""

import contextlib
import importlib.resources
import logging

import fastapi
import fastapi.exceptions
import fastapi.responses
import pydantic

from ok_serial_log import _exceptions
from ok_serial_log import _log_store
from ok_serial_log import _manager
from ok_serial_log import _scanning

log = logging.getLogger("ok_serial_log.server")

DEFAULT_BAUD = 9600

_LOG_NAME_ALIAS = pydantic.AliasChoices("logName", "filename")


class ConnectRequest(pydantic.BaseModel):
    path: str | None = None
    baud_rate: int | None = pydantic.Field(default=None, validation_alias="baudRate")
    log_name: str | None = pydantic.Field(default=None, validation_alias=_LOG_NAME_ALIAS)


class DisconnectRequest(pydantic.BaseModel):
    path: str | None = None


class FilenameRequest(pydantic.BaseModel):
    path: str | None = None
    log_name: str | None = pydantic.Field(default=None, validation_alias=_LOG_NAME_ALIAS)


class MockRequest(pydantic.BaseModel):
    data: str | None = None
    log_name: str | None = pydantic.Field(default=None, validation_alias=_LOG_NAME_ALIAS)


_ERROR_STATUS: dict[type[Exception], int] = {
    _exceptions.InvalidNameError: 400,
    _exceptions.MissingFieldError: 400,
    pydantic.ValidationError: 400,
    fastapi.exceptions.RequestValidationError: 400,
    _exceptions.NotOpenError: 404,
    _exceptions.AlreadyOpenError: 409,
    _exceptions.DeviceUnavailableError: 500,
    _exceptions.PortScanException: 500,
}


def create_app(manager: _manager.SessionManager) -> fastapi.FastAPI:
    """Builds the API around 'manager', which the app closes on shutdown"""

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI):
        log.info("Logging to %s", manager.store.root.resolve())
        yield
        manager.registry.close_all()

    app = fastapi.FastAPI(title="ok-serial-log", lifespan=lifespan)
    app.state.manager = manager
    for exc_type, status in _ERROR_STATUS.items():
        app.add_exception_handler(exc_type, _error_handler(status))

    @app.get("/", response_class=fastapi.responses.HTMLResponse)
    def index():
        ui = importlib.resources.files("ok_serial_log").joinpath("static")
        return ui.joinpath("index.html").read_text(encoding="utf-8")

    @app.get("/api/ports")
    def list_ports() -> list[dict[str, str]]:
        return [port.descriptor() for port in _scanning.scan_serial_ports()]

    @app.post("/api/connect")
    def connect(body: ConnectRequest) -> dict[str, str]:
        _require(path=body.path, logName=body.log_name)
        baud = body.baud_rate or DEFAULT_BAUD
        session = manager.open(body.path, baud, body.log_name)
        return {
            "message": "Connected",
            "port": session.device_id,
            "filename": session.log_name,
        }

    @app.post("/api/disconnect")
    def disconnect(body: DisconnectRequest) -> dict[str, str]:
        _require(path=body.path)
        try:
            if manager.close(body.path):
                return {"message": "Disconnected"}
        except _exceptions.CloseError as exc:
            log.warning("%s", exc)
            return {"message": f"Disconnected with error: {exc}"}
        return {"message": "No active connection or already disconnected"}

    @app.post("/api/filename")
    def set_filename(body: FilenameRequest) -> dict[str, str]:
        _require(path=body.path, logName=body.log_name)
        name = manager.set_log_name(body.path, body.log_name)
        return {"message": "Filename set", "port": body.path, "filename": name}

    @app.post("/api/mock")
    def mock(body: MockRequest) -> dict[str, str]:
        _require(data=body.data, logName=body.log_name)
        manager.inject(body.log_name, body.data)
        return {"message": "Mock data logged"}

    @app.get("/api/data")
    def data(filename: str | None = None) -> dict[str, str]:
        if not filename:
            return {"content": ""}
        return {"content": manager.read(filename)}

    @app.get("/api/status")
    def status() -> dict:
        snapshot = manager.snapshot()
        return {
            "connected": any(s.connected for s in snapshot),
            "activePorts": [s.device_id for s in snapshot if s.connected],
            "sessions": [
                {
                    "path": s.device_id,
                    "logName": s.log_name,
                    "baudRate": s.baud,
                    "connected": s.connected,
                }
                for s in snapshot
            ],
            "defaultLogName": manager.status.default_log_name,
        }

    @app.get("/{filename}")
    def log_file(filename: str):
        if not filename.endswith(_log_store.LOG_SUFFIX):
            return _error(404, "Not found.")
        if not manager.store.exists(filename):
            return _error(404, "File not found.")
        return fastapi.responses.PlainTextResponse(manager.read(filename))

    return app


def _require(**fields: str | None) -> None:
    if missing := [name for name, value in fields.items() if not value]:
        raise _exceptions.MissingFieldError(*missing)


def _error(status: int, message: str) -> fastapi.responses.JSONResponse:
    return fastapi.responses.JSONResponse({"error": message}, status_code=status)


def _error_handler(status: int):
    async def handler(request: fastapi.Request, exc: Exception):
        if status >= 500:
            log.warning("%s %s: %s", request.method, request.url.path, exc)
        elif isinstance(exc, fastapi.exceptions.RequestValidationError):
            return _error(status, "Invalid request body")
        return _error(status, str(exc))

    return handler
