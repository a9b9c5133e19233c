from __future__ import annotations

from ..core.config import Config
from ..core.errors import ExitCode
from ..core.protocols import BorgClientProtocol
from .base import Command


class ListCommand(Command):
    def __init__(
        self,
        config: Config,
        borg: BorgClientProtocol,
        *,
        job_name: str | None = None,
    ) -> None:
        self._config = config
        self._borg = borg
        self._job_name = job_name

    def run(self) -> int:
        glob = None
        if self._job_name:
            job = next((item for item in self._config.jobs if item.name == self._job_name), None)
            if job is None:
                print(f"Unknown job: {self._job_name}")
                return ExitCode.CONFIG_ERROR
            glob = f"{job.destination}-*"

        archives = self._borg.list_archives(glob=glob)
        if not archives:
            print("(no archives)")
            return ExitCode.OK

        width = max(len(archive.name) for archive in archives)
        for archive in sorted(archives, key=lambda item: (item.time, item.name)):
            moment = archive.time.isoformat(sep=" ", timespec="seconds")
            print(f"{archive.name:<{width}}  {moment}")
        return ExitCode.OK
