from __future__ import annotations

import json
import logging
import os
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Iterable

from .archives import Archive, RepositoryInfo
from .config import Config, Encryption
from .errors import EngineError
from .results import RunResult, is_success

logger = logging.getLogger(__name__)


class BorgClient:
    def __init__(
        self,
        config: Config,
        passphrase: str | None = None,
        *,
        executable: str = "borg",
    ) -> None:
        self._config = config
        self._passphrase = passphrase
        self._executable = executable

    @property
    def repository(self) -> str:
        return self._config.repository.path

    def run(
        self,
        args: Iterable[str],
        *,
        capture_output: bool = True,
        check: bool = False,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        cmd = [self._executable, *args]
        logger.debug("Running: %s", " ".join(cmd))
        return subprocess.run(
            cmd,
            env=self._build_env(),
            text=True,
            capture_output=capture_output,
            check=check,
            timeout=timeout,
        )

    def repository_exists(self) -> bool:
        try:
            result = self.run(["info", self.repository], timeout=self._timeout)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def init(self, encryption: Encryption) -> RunResult:
        args = ["init", f"--encryption={encryption.value}", self.repository]
        return self._execute("init", args)

    def create(self, archive_id: str, source: Path, excludes: Sequence[str]) -> RunResult:
        options = self._config.options
        args = ["create", f"--compression={self._config.compression}"]
        if options.show_stats:
            args.append("--stats")
        if options.show_progress:
            args.append("--progress")
        if options.one_file_system:
            args.append("--one-file-system")
        if options.exclude_caches:
            args.append("--exclude-caches")
        for pattern in excludes:
            args.extend(["--exclude", pattern])
        args.extend([f"{self.repository}::{archive_id}", str(source)])

        result = self._execute("create", args)
        result.archive = archive_id
        return result

    def prune(self, directives: Sequence[str], *, dry_run: bool = False) -> RunResult:
        args = ["prune", "--list"]
        if dry_run:
            args.append("--dry-run")
        args.extend(directives)
        args.append(self.repository)
        return self._execute("prune", args)

    def compact(self) -> RunResult:
        return self._execute("compact", ["compact", self.repository])

    def check(self) -> RunResult:
        return self._execute("check", ["check", self.repository])

    def list_archives(self, glob: str | None = None) -> list[Archive]:
        args = ["list", "--json"]
        if glob:
            args.append(f"--glob-archives={glob}")
        args.append(self.repository)
        payload = self._json("list", args)
        archives = payload.get("archives")
        if not isinstance(archives, list):
            raise EngineError(
                "list", 0, "Unexpected archive list payload format from borg", retryable=False
            )
        try:
            return [Archive.from_json(item) for item in archives]
        except (TypeError, ValueError) as exc:
            raise EngineError(
                "list", 0, f"Could not parse archive entry: {exc}", retryable=False
            ) from exc

    def info(self) -> RepositoryInfo:
        payload = self._json("info", ["info", "--json", self.repository])
        try:
            return RepositoryInfo.from_json(payload)
        except (TypeError, ValueError) as exc:
            raise EngineError(
                "info", 0, f"Could not parse repository info: {exc}", retryable=False
            ) from exc

    def mount(
        self,
        mount_point: Path,
        *,
        archive: str | None = None,
        foreground: bool = False,
    ) -> RunResult:
        target = f"{self.repository}::{archive}" if archive else self.repository
        args = ["mount"]
        if foreground:
            args.append("--foreground")
        args.extend([target, str(mount_point)])
        # a foreground mount lasts as long as the user browses
        return self._execute("mount", args, capture_output=not foreground, bounded=False)

    def umount(self, mount_point: Path) -> RunResult:
        return self._execute("umount", ["umount", str(mount_point)])

    @property
    def _timeout(self) -> float | None:
        return self._config.options.command_timeout

    def _invoke(
        self,
        operation: str,
        args: list[str],
        *,
        capture_output: bool = True,
        bounded: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        timeout = self._timeout if bounded else None
        try:
            process = self.run(args, capture_output=capture_output, timeout=timeout)
        except FileNotFoundError as exc:
            raise EngineError(
                operation,
                None,
                f"borg executable not found: {self._executable}",
                retryable=False,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise EngineError(
                operation,
                None,
                f"timed out after {timeout} seconds",
                retryable=True,
            ) from exc
        except OSError as exc:
            raise EngineError(operation, None, str(exc), retryable=False) from exc

        if not is_success(process.returncode):
            raise EngineError(operation, process.returncode, process.stderr or "")
        return process

    def _execute(
        self,
        operation: str,
        args: list[str],
        *,
        capture_output: bool = True,
        bounded: bool = True,
    ) -> RunResult:
        started = time.monotonic()
        process = self._invoke(
            operation,
            args,
            capture_output=capture_output,
            bounded=bounded,
        )
        output = "".join(part for part in (process.stdout, process.stderr) if part)
        return RunResult(
            name=operation,
            returncode=process.returncode,
            output=output,
            duration=time.monotonic() - started,
        )

    def _json(self, operation: str, args: list[str]) -> dict[str, Any]:
        process = self._invoke(operation, args)
        try:
            payload = json.loads(process.stdout)
        except json.JSONDecodeError as exc:
            raise EngineError(
                operation,
                process.returncode,
                f"Could not parse borg {operation} JSON: {exc}",
                retryable=False,
            ) from exc
        if isinstance(payload, dict):
            return payload
        raise EngineError(
            operation,
            process.returncode,
            f"Unexpected {operation} payload format from borg",
            retryable=False,
        )

    def _build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env.pop("BORG_PASSPHRASE", None)
        if self._passphrase is not None:
            env["BORG_PASSPHRASE"] = self._passphrase
        return env
