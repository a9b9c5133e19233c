from __future__ import annotations

import subprocess
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

from .archives import Archive, RepositoryInfo
from .config import Encryption
from .results import RunResult


class BorgClientProtocol(Protocol):
    def run(
        self,
        args: Iterable[str],
        *,
        capture_output: bool = True,
        check: bool = False,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        ...

    def repository_exists(self) -> bool:
        ...

    def init(self, encryption: Encryption) -> RunResult:
        ...

    def create(self, archive_id: str, source: Path, excludes: Sequence[str]) -> RunResult:
        ...

    def prune(self, directives: Sequence[str], *, dry_run: bool = False) -> RunResult:
        ...

    def compact(self) -> RunResult:
        ...

    def check(self) -> RunResult:
        ...

    def list_archives(self, glob: str | None = None) -> list[Archive]:
        ...

    def info(self) -> RepositoryInfo:
        ...

    def mount(
        self,
        mount_point: Path,
        *,
        archive: str | None = None,
        foreground: bool = False,
    ) -> RunResult:
        ...

    def umount(self, mount_point: Path) -> RunResult:
        ...


class ClockProtocol(Protocol):
    def now(self) -> datetime:
        ...

    def now_iso(self) -> str:
        ...

    def timestamp(self) -> str:
        ...


class NotifierProtocol(Protocol):
    def notify(self, failures: Sequence[RunResult]) -> bool:
        ...


class LockProtocol(Protocol):
    def __enter__(self) -> object:
        ...

    def __exit__(self, exc_type, exc, traceback) -> None:
        ...
