from __future__ import annotations

from ..core.config import Config
from ..core.errors import ExitCode
from ..core.protocols import BorgClientProtocol, ClockProtocol, LockProtocol
from .base import Command


class CheckCommand(Command):
    def __init__(
        self,
        config: Config,
        borg: BorgClientProtocol,
        clock: ClockProtocol,
        lock: LockProtocol,
    ) -> None:
        self._config = config
        self._borg = borg
        self._clock = clock
        self._lock = lock

    def run(self) -> int:
        print(f"Checking repository {self._config.repository.path} at {self._clock.now_iso()}")
        with self._lock:
            result = self._borg.check()
        if result.output:
            print(result.output, end="" if result.output.endswith("\n") else "\n")
        print("Integrity check passed")
        return ExitCode.OK
