from __future__ import annotations

from ..core.config import Config
from ..core.errors import ExitCode
from ..core.protocols import BorgClientProtocol, ClockProtocol
from ..core.retention import plan
from .base import Command


class PlanCommand(Command):
    """Preview which archives the retention policy keeps for each enabled job."""

    def __init__(
        self,
        config: Config,
        borg: BorgClientProtocol,
        clock: ClockProtocol,
    ) -> None:
        self._config = config
        self._borg = borg
        self._clock = clock

    def run(self) -> int:
        now = self._clock.now()
        retention = self._config.retention
        print(f"Retention plan at {self._clock.now_iso()}")
        print(f"Keep everything within {retention.within}")

        for job in self._config.enabled_jobs:
            archives = self._borg.list_archives(glob=f"{job.destination}-*")
            result = plan(retention, archives, now)
            print("")
            print(f"{job.name}: keep {len(result.keep)}, prune {len(result.prune)}")
            for archive in sorted(archives, key=lambda item: (item.time, item.name), reverse=True):
                print(f"  {result.reason_for(archive):<12} {archive.name}")
        return ExitCode.OK
