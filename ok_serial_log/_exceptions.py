"""Exception hierarchy for ok_serial_log"""


class LineStreamException(OSError):
    def __init__(
        self,
        message: str,
        port: str | None = None,
    ):
        super().__init__(f"{port}: {message}" if port else message)
        self.port = port


class LineStreamIoException(LineStreamException):
    pass


class LineStreamClosed(LineStreamIoException):
    pass


class LineStreamOpenException(LineStreamException):
    pass


class LineStreamOpenBusy(LineStreamOpenException):
    pass


class PortScanException(LineStreamException):
    pass


class SessionException(OSError):
    def __init__(
        self,
        message: str,
        device: str | None = None,
    ):
        super().__init__(f"{device}: {message}" if device else message)
        self.device = device


class AlreadyOpenError(SessionException):
    pass


class NotOpenError(SessionException):
    pass


class DeviceUnavailableError(SessionException):
    pass


class CloseError(SessionException):
    pass


class InvalidNameError(ValueError):
    pass


class MissingFieldError(ValueError):
    def __init__(self, *fields: str):
        names = ", ".join(fields)
        super().__init__(f"Missing required field{'s' if len(fields) > 1 else ''}: {names}")
        self.fields = fields
