from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

from ..core.errors import ExitCode, MountError
from ..core.protocols import BorgClientProtocol
from .base import Command


class MountCommand(Command):
    def __init__(
        self,
        borg: BorgClientProtocol,
        mount_point: Path,
        *,
        archive: str | None = None,
        foreground: bool = False,
        is_mounted: Callable[[Path], bool] = os.path.ismount,
    ) -> None:
        self._borg = borg
        self._mount_point = mount_point
        self._archive = archive
        self._foreground = foreground
        self._is_mounted = is_mounted

    def run(self) -> int:
        mount_point = self._mount_point
        if mount_point.exists() and not mount_point.is_dir():
            raise MountError(f"Mount point {mount_point} is not a directory")
        if not mount_point.exists():
            print(f"Creating mount point: {mount_point}")
            try:
                mount_point.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise MountError(
                    f"Cannot create mount point {mount_point}: {exc.strerror or exc}"
                ) from exc
        if self._is_mounted(mount_point):
            raise MountError(
                f"{mount_point} is already mounted. Unmount with: fusermount -u {mount_point}"
            )

        print(f"Mounting repository to {mount_point}")
        self._borg.mount(mount_point, archive=self._archive, foreground=self._foreground)
        if self._foreground:
            print(f"Unmounted {mount_point}")
            return ExitCode.OK

        print("Mounted successfully!")
        print(f"Browse backups: ls {mount_point}")
        print(f"Unmount with: fusermount -u {mount_point}")
        return ExitCode.OK


class UmountCommand(Command):
    def __init__(
        self,
        borg: BorgClientProtocol,
        mount_point: Path,
        *,
        is_mounted: Callable[[Path], bool] = os.path.ismount,
    ) -> None:
        self._borg = borg
        self._mount_point = mount_point
        self._is_mounted = is_mounted

    def run(self) -> int:
        if not self._is_mounted(self._mount_point):
            raise MountError(f"{self._mount_point} is not mounted")
        self._borg.umount(self._mount_point)
        print(f"Unmounted {self._mount_point}")
        return ExitCode.OK
