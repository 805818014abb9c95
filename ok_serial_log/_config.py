import os
import pathlib

import pydantic


class ServerOptions(pydantic.BaseModel):
    log_dir: pathlib.Path = pathlib.Path(".")
    host: str = "127.0.0.1"
    port: int = pydantic.Field(default=3000, gt=0, lt=65536)
    default_log_name: str | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ServerOptions":
        """Builds options from $OK_SERIAL_LOG_* variables (unset = default)"""

        env = os.environ if environ is None else environ
        fields = {
            "log_dir": env.get("OK_SERIAL_LOG_DIR"),
            "host": env.get("OK_SERIAL_LOG_HOST"),
            "port": env.get("OK_SERIAL_LOG_PORT"),
            "default_log_name": env.get("OK_SERIAL_LOG_DEFAULT"),
        }
        return cls(**{k: v for k, v in fields.items() if v})
