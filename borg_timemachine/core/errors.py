from __future__ import annotations

import re
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    OK = 0
    JOB_FAILURE = 1
    USAGE = 2
    CONFIG_ERROR = 3
    ENGINE_ERROR = 4
    LOCKED = 5
    MOUNT_ERROR = 6


# Modern borg exit codes (BORG_EXIT_CODES=modern) for lock and connection errors.
_RETRYABLE_CODES = frozenset({70, 71, 72, 73, 80, 81})
_RETRYABLE_PATTERN = re.compile(
    r"Failed to create/acquire the lock"
    r"|LockTimeout|LockFailed|LockError"
    r"|Connection closed by remote host"
    r"|Connection reset by peer",
    re.IGNORECASE,
)


def is_retryable(returncode: int | None, stderr: str) -> bool:
    if returncode in _RETRYABLE_CODES:
        return True
    return bool(_RETRYABLE_PATTERN.search(stderr or ""))


class BorgTimeMachineError(Exception):
    exit_code: ExitCode = ExitCode.ENGINE_ERROR


class ConfigErrorKind(Enum):
    MALFORMED = "malformed"
    MISSING_FIELD = "missing field"
    INVALID_VALUE = "invalid value"
    DUPLICATE_JOB_NAME = "duplicate job name"


class ConfigError(BorgTimeMachineError):
    exit_code = ExitCode.CONFIG_ERROR

    def __init__(self, kind: ConfigErrorKind, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.kind = kind
        self.field = field
        self.message = message


class EngineError(BorgTimeMachineError):
    """The borg executable failed, could not be started, or timed out.

    ``stderr`` carries the captured diagnostic text verbatim. ``retryable``
    separates transient conditions (lock contention, dropped connections,
    timeouts) from fatal ones; nothing in this package retries on its own.
    """

    exit_code = ExitCode.ENGINE_ERROR

    def __init__(
        self,
        operation: str,
        returncode: int | None,
        stderr: str,
        *,
        retryable: bool | None = None,
    ) -> None:
        status = "no exit status" if returncode is None else f"exit code {returncode}"
        detail = stderr.strip()
        message = f"borg {operation} failed with {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr
        self.retryable = (
            is_retryable(returncode, stderr) if retryable is None else retryable
        )


class NotificationError(BorgTimeMachineError):
    pass


class LockError(BorgTimeMachineError):
    exit_code = ExitCode.LOCKED


class MountError(BorgTimeMachineError):
    exit_code = ExitCode.MOUNT_ERROR
