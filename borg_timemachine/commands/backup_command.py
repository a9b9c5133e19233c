from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.config import Config, Job
from ..core.errors import EngineError, ExitCode, NotificationError
from ..core.protocols import BorgClientProtocol, ClockProtocol, LockProtocol, NotifierProtocol
from ..core.results import RunResult
from ..core.retention import prune_directives
from .base import Command

logger = logging.getLogger(__name__)


class BackupCommand(Command):
    """Run every enabled job in declared order, then the maintenance steps.

    Each job creates one archive and, only when that succeeded, prunes the
    job's archives with the configured retention policy. A failing job is
    recorded and the next job still runs. The lock token is held for the
    whole cycle so no two cycles touch the repository at once.
    """

    def __init__(
        self,
        config: Config,
        borg: BorgClientProtocol,
        clock: ClockProtocol,
        lock: LockProtocol,
        notifier: NotifierProtocol,
    ) -> None:
        self._config = config
        self._borg = borg
        self._clock = clock
        self._lock = lock
        self._notifier = notifier
        self.results: list[RunResult] = []

    def run(self) -> int:
        with self._lock:
            logger.info("Starting backup cycle at %s", self._clock.now_iso())
            logger.info("Repository: %s", self._config.repository.path)
            self.results = self._run_jobs()
            self.results.extend(self._run_maintenance())

        failures = [result for result in self.results if not result.success]
        if failures:
            names = ", ".join(result.name for result in failures)
            logger.error(
                "Backup cycle finished with %d failure(s): %s", len(failures), names
            )
            self._notify(failures)
            return ExitCode.JOB_FAILURE

        logger.info("Backup cycle complete")
        return ExitCode.OK

    def _run_jobs(self) -> list[RunResult]:
        for job in self._config.jobs:
            if not job.enabled:
                logger.info("Skipping disabled job: %s", job.name)

        enabled = self._config.enabled_jobs
        if not enabled:
            logger.warning("No enabled jobs configured")
        return [self._run_job(job) for job in enabled]

    def _run_job(self, job: Job) -> RunResult:
        started = time.monotonic()
        archive_id = f"{job.destination}-{self._clock.timestamp()}"
        excludes = [*self._config.exclusions, *job.exclude]
        logger.info("Starting backup: %s (%s -> %s)", job.name, job.source, archive_id)

        try:
            created = self._borg.create(archive_id, job.source, excludes)
        except EngineError as exc:
            logger.error("Backup of %s failed: %s", job.name, exc)
            return RunResult(
                name=job.name,
                returncode=exc.returncode,
                output=exc.stderr,
                duration=time.monotonic() - started,
                archive=archive_id,
            )
        self._log_output(created.output)
        if created.warning:
            logger.warning(
                "Backup of %s created with warnings (some files may have been skipped)",
                job.name,
            )
        else:
            logger.info("Backup of %s created successfully", job.name)

        logger.info("Pruning archives of %s", job.name)
        try:
            pruned = self._borg.prune(prune_directives(self._config.retention, job.destination))
        except EngineError as exc:
            logger.error("Prune of %s failed: %s", job.name, exc)
            return RunResult(
                name=job.name,
                returncode=exc.returncode,
                output="".join([created.output, exc.stderr]),
                duration=time.monotonic() - started,
                archive=archive_id,
            )
        self._log_output(pruned.output)
        logger.info("Prune of %s completed", job.name)

        return RunResult(
            name=job.name,
            returncode=max(created.returncode or 0, pruned.returncode or 0),
            output="".join([created.output, pruned.output]),
            duration=time.monotonic() - started,
            archive=archive_id,
        )

    def _run_maintenance(self) -> list[RunResult]:
        steps: list[RunResult] = []
        maintenance = self._config.maintenance
        pruned_any = any(result.success for result in self.results)

        if maintenance.auto_compact and pruned_any:
            logger.info("Compacting repository...")
            steps.append(self._maintenance_step("compact", self._borg.compact))

        today = self._clock.now().isoweekday()
        if maintenance.check_day and today == maintenance.check_day:
            logger.info("Running weekly integrity check...")
            steps.append(self._maintenance_step("check", self._borg.check))
        return steps

    def _maintenance_step(self, name: str, operation: Callable[[], RunResult]) -> RunResult:
        started = time.monotonic()
        try:
            result = operation()
        except EngineError as exc:
            logger.error("Repository %s failed: %s", name, exc)
            return RunResult(
                name=name,
                returncode=exc.returncode,
                output=exc.stderr,
                duration=time.monotonic() - started,
            )
        self._log_output(result.output)
        logger.info("Repository %s completed", name)
        return result

    def _notify(self, failures: list[RunResult]) -> None:
        try:
            self._notifier.notify(failures)
        except NotificationError as exc:
            logger.warning("%s", exc)

    def _log_output(self, output: str) -> None:
        for line in output.splitlines():
            if line.strip():
                logger.info("  %s", line)
