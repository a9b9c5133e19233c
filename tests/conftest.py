from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from borg_timemachine.core.archives import Archive, RepositoryInfo
from borg_timemachine.core.config import (
    Config,
    Encryption,
    Job,
    LoggingSettings,
    Maintenance,
    NotificationSettings,
    Options,
    Repository,
    Security,
)
from borg_timemachine.core.errors import EngineError
from borg_timemachine.core.results import RunResult
from borg_timemachine.core.retention import RetentionPolicy


class FixedClock:
    def __init__(self) -> None:
        # 2026-02-16 is a Monday
        self._now = datetime(2026, 2, 16, 1, 2, 3, tzinfo=timezone.utc)
        self._timestamp = "2026-02-16T010203Z"
        self._iso = "2026-02-16T01:02:03Z"

    def now(self) -> datetime:
        return self._now

    def now_iso(self) -> str:
        return self._iso

    def timestamp(self) -> str:
        return self._timestamp


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    yield
    package_logger = logging.getLogger("borg_timemachine")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def sample_config(tmp_path: Path) -> Config:
    source_home = tmp_path / "home"
    source_etc = tmp_path / "etc"
    source_home.mkdir(parents=True, exist_ok=True)
    source_etc.mkdir(parents=True, exist_ok=True)
    passphrase_file = tmp_path / "borg-passphrase"
    passphrase_file.write_text("unit-test-password\n", encoding="utf-8")
    passphrase_file.chmod(0o600)

    return Config(
        config_file=tmp_path / "borg-config.yaml",
        repository=Repository(
            path=str(tmp_path / "borg-repo"),
            encryption=Encryption.REPOKEY_BLAKE2,
        ),
        jobs=[
            Job(name="home", source=source_home, destination="home", exclude=["*.tmp"]),
            Job(name="etc", source=source_etc, destination="etc"),
        ],
        retention=RetentionPolicy(
            within="24H",
            hourly=24,
            daily=7,
            weekly=4,
            monthly=6,
            yearly=2,
        ),
        compression="lz4",
        exclusions=["*/.cache/*"],
        options=Options(),
        notification=NotificationSettings(enabled=True, email="ops@example.com"),
        logging=LoggingSettings(
            log_file=tmp_path / "logs" / "borg-timemachine.log",
            lock_file=tmp_path / "borg-timemachine.lock",
        ),
        maintenance=Maintenance(check_day=0, auto_compact=False),
        security=Security(passphrase_file=passphrase_file),
    )


class BorgStub:
    """Records every call; ``failures`` maps an operation (or ``create:<dest>``) to an error."""

    def __init__(
        self,
        *,
        archives: list[Archive] | None = None,
        info: RepositoryInfo | None = None,
        exists: bool = False,
        returncodes: dict[str, int] | None = None,
        failures: dict[str, EngineError] | None = None,
    ) -> None:
        self.archives = archives or []
        self.repository_info = info
        self.exists = exists
        self.returncodes = returncodes or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def _record(
        self, operation: str, *args: Any, key: str | None = None, **kwargs: Any
    ) -> RunResult:
        self.calls.append((operation, args, kwargs))
        error = self.failures.get(key or operation)
        if error is not None:
            raise error
        returncode = self.returncodes.get(key or operation, 0)
        return RunResult(name=operation, returncode=returncode, output=f"{operation} output\n")

    @property
    def operations(self) -> list[str]:
        return [operation for operation, _, _ in self.calls]

    def run(
        self,
        args: Iterable[str],
        *,
        capture_output: bool = True,
        check: bool = False,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        raise NotImplementedError

    def repository_exists(self) -> bool:
        self.calls.append(("repository_exists", (), {}))
        return self.exists

    def init(self, encryption: Encryption) -> RunResult:
        return self._record("init", encryption)

    def create(self, archive_id: str, source: Path, excludes: Sequence[str]) -> RunResult:
        destination = archive_id.rsplit("-", 3)[0]
        key = f"create:{destination}" if f"create:{destination}" in self.failures else "create"
        result = self._record("create", archive_id, source, list(excludes), key=key)
        result.archive = archive_id
        return result

    def prune(self, directives: Sequence[str], *, dry_run: bool = False) -> RunResult:
        return self._record("prune", list(directives), dry_run=dry_run)

    def compact(self) -> RunResult:
        return self._record("compact")

    def check(self) -> RunResult:
        return self._record("check")

    def list_archives(self, glob: str | None = None) -> list[Archive]:
        self.calls.append(("list_archives", (), {"glob": glob}))
        if "list" in self.failures:
            raise self.failures["list"]
        if glob is None:
            return list(self.archives)
        prefix = glob.rstrip("*")
        return [archive for archive in self.archives if archive.name.startswith(prefix)]

    def info(self) -> RepositoryInfo:
        self.calls.append(("info", (), {}))
        if self.repository_info is None:
            raise NotImplementedError
        return self.repository_info

    def mount(
        self,
        mount_point: Path,
        *,
        archive: str | None = None,
        foreground: bool = False,
    ) -> RunResult:
        return self._record("mount", mount_point, archive=archive, foreground=foreground)

    def umount(self, mount_point: Path) -> RunResult:
        return self._record("umount", mount_point)


class LockStub:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.entered = 0
        self.exited = 0

    def __enter__(self) -> "LockStub":
        if self.error is not None:
            raise self.error
        self.entered += 1
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.exited += 1


class NotifierStub:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[list[RunResult]] = []

    def notify(self, failures: Sequence[RunResult]) -> bool:
        self.sent.append(list(failures))
        if self.error is not None:
            raise self.error
        return True
