from __future__ import annotations

from ..core.config import Config
from ..core.errors import EngineError, ExitCode
from ..core.protocols import BorgClientProtocol, ClockProtocol, LockProtocol
from ..core.retention import prune_directives
from .base import Command


class PruneCommand(Command):
    def __init__(
        self,
        config: Config,
        borg: BorgClientProtocol,
        clock: ClockProtocol,
        lock: LockProtocol,
        *,
        dry_run: bool = False,
    ) -> None:
        self._config = config
        self._borg = borg
        self._clock = clock
        self._lock = lock
        self._dry_run = dry_run

    def run(self) -> int:
        retention = self._config.retention
        mode = " (dry run)" if self._dry_run else ""
        print(f"Running prune{mode} at {self._clock.now_iso()}")
        print(
            "Policy: "
            f"within={retention.within} "
            f"hourly={retention.hourly} "
            f"daily={retention.daily} "
            f"weekly={retention.weekly} "
            f"monthly={retention.monthly} "
            f"yearly={retention.yearly}"
        )

        failed: list[str] = []
        with self._lock:
            for job in self._config.enabled_jobs:
                print(f"Pruning archives of {job.name}")
                try:
                    result = self._borg.prune(
                        prune_directives(retention, job.destination),
                        dry_run=self._dry_run,
                    )
                except EngineError as exc:
                    print(f"Prune of {job.name} failed: {exc}")
                    failed.append(job.name)
                    continue
                if result.output:
                    print(result.output, end="" if result.output.endswith("\n") else "\n")

        if failed:
            print(f"Prune failed for: {', '.join(failed)}")
            return ExitCode.JOB_FAILURE
        print(f"Prune completed at {self._clock.now_iso()}")
        return ExitCode.OK
