"""Append-only, timestamped text logs kept as flat files in one directory"""

import datetime
import logging
import pathlib
import re
import threading
import weakref

from ok_serial_log import _exceptions

LOG_SUFFIX = ".txt"

log = logging.getLogger("ok_serial_log.store")

_FORBIDDEN = ("..", "/", "\\", "\0")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def normalize_name(name: str) -> str:
    """Canonical file name for a log name ('foo' and 'foo.txt' are the same)"""

    name = name.strip()
    if not name:
        raise _exceptions.InvalidNameError("Log name is empty")
    try:
        name.encode("utf-8")
    except UnicodeEncodeError as ex:
        raise _exceptions.InvalidNameError(f"Bad log name: {name!r}") from ex
    if any(bad in name for bad in _FORBIDDEN):
        raise _exceptions.InvalidNameError(f"Bad log name: {name!r}")
    if not name.endswith(LOG_SUFFIX):
        name += LOG_SUFFIX
    if name == LOG_SUFFIX:
        raise _exceptions.InvalidNameError(f"Bad log name: {name!r}")
    return name


def default_name(now: datetime.datetime | None = None) -> str:
    """A YYYYMMDDHHMM.txt log name for the current local time"""

    now = now or datetime.datetime.now()
    return now.strftime("%Y%m%d%H%M") + LOG_SUFFIX


def format_entry(text: str, when: datetime.datetime | None = None) -> str:
    when = when or datetime.datetime.now(datetime.timezone.utc)
    stamp = when.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")
    text = _LINE_BREAK_RE.sub(" ", text.rstrip("\r\n"))
    return f"[{stamp.replace('+00:00', 'Z')}] {text}\n"


class LogStore:
    """Named append-only log files under a root directory.

    Appends to one name are serialized with a per-name lock; appends to
    different names proceed in parallel. Files are created on first use
    and never truncated or deleted.
    """

    def __init__(self, root: pathlib.Path | str):
        self.root = pathlib.Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def __repr__(self) -> str:
        return f"LogStore({str(self.root)!r})"

    def path_for(self, name: str) -> pathlib.Path:
        return self.root / normalize_name(name)

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def ensure(self, name: str) -> pathlib.Path:
        norm = normalize_name(name)
        path = self.root / norm
        with self._lock_for(norm):
            if not path.exists():
                path.touch()
                log.info("Created %s", path)
        return path

    def append(self, name: str, text: str) -> None:
        norm = normalize_name(name)
        path = self.root / norm
        entry = format_entry(text)
        with self._lock_for(norm):
            with path.open("a", encoding="utf-8", errors="backslashreplace") as f:
                f.write(entry)
        log.debug("Logged to %s: %s", norm, entry.rstrip("\n"))

    def read_all(self, name: str) -> str:
        norm = normalize_name(name)
        path = self.root / norm
        with self._lock_for(norm):
            try:
                return path.read_text(encoding="utf-8", errors="replace")
            except FileNotFoundError:
                return ""

    def _lock_for(self, norm: str) -> threading.Lock:
        with self._locks_guard:
            if (lock := self._locks.get(norm)) is None:
                lock = self._locks[norm] = threading.Lock()
            return lock
