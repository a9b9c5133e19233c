from __future__ import annotations

import logging
import os
from pathlib import Path
from types import TracebackType

from .errors import LockError

logger = logging.getLogger(__name__)


class RepositoryLock:
    """Exclusive token for running a backup cycle against the repository.

    The lock is a file created with ``O_EXCL`` that holds the owner's pid.
    A lock left behind by a process that no longer exists is treated as stale
    and replaced.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        if self._held:
            return
        if not self._try_create():
            if not self._is_stale():
                raise LockError(
                    f"Lock file exists at {self._path}. Another backup may be running."
                )
            logger.warning("Removing stale lock file %s", self._path)
            self._path.unlink(missing_ok=True)
            if not self._try_create():
                raise LockError(
                    f"Lock file exists at {self._path}. Another backup may be running."
                )
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        self._path.unlink(missing_ok=True)
        self._held = False

    def __enter__(self) -> "RepositoryLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()

    def _try_create(self) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            raise LockError(f"Failed to create lock file {self._path}: {exc}") from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()}\n")
        return True

    def _is_stale(self) -> bool:
        try:
            pid = int(self._path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return False
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        return False
