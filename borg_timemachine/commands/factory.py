from __future__ import annotations

import socket
from argparse import Namespace
from collections.abc import Callable
from pathlib import Path

from ..core.borg_client import BorgClient
from ..core.clock import Clock
from ..core.config import Config, NotificationSettings
from ..core.config_loader import ConfigLoader
from ..core.lock import RepositoryLock
from ..core.notifier import EmailNotifier
from ..core.protocols import BorgClientProtocol, ClockProtocol, LockProtocol, NotifierProtocol
from .backup_command import BackupCommand
from .base import Command
from .check_command import CheckCommand
from .info_command import InfoCommand
from .init_command import InitCommand
from .list_command import ListCommand
from .mount_command import MountCommand, UmountCommand
from .plan_command import PlanCommand
from .prune_command import PruneCommand

ACTIONS = ("init", "backup", "prune", "plan", "list", "info", "check", "mount", "umount")


def short_hostname() -> str:
    return socket.gethostname().split(".", 1)[0]


class CommandFactory:
    def __init__(
        self,
        *,
        config_loader: ConfigLoader | None = None,
        clock: ClockProtocol | None = None,
        borg_client_factory: Callable[[Config, str | None], BorgClientProtocol] | None = None,
        lock_factory: Callable[[Path], LockProtocol] | None = None,
        notifier_factory: Callable[[NotificationSettings, str], NotifierProtocol] | None = None,
        hostname: str | None = None,
    ) -> None:
        self._config_loader = config_loader or ConfigLoader()
        self._clock = clock or Clock()
        self._borg_client_factory = borg_client_factory or BorgClient
        self._lock_factory = lock_factory or RepositoryLock
        self._notifier_factory = notifier_factory or EmailNotifier
        self._hostname = hostname

    def load_config(self, config_path: str | None) -> Config:
        return self._config_loader.load(config_path)

    def create(self, action: str, config: Config, options: Namespace | None = None) -> Command:
        if action not in ACTIONS:
            raise SystemExit(f"Unsupported action: {action}")
        options = options or Namespace()
        # read once per invocation, handed to the client only
        passphrase = self._config_loader.load_passphrase(config)
        borg = self._borg_client_factory(config, passphrase)

        if action == "init":
            return InitCommand(config, borg)
        if action == "backup":
            hostname = self._hostname or short_hostname()
            return BackupCommand(
                config,
                borg,
                self._clock,
                self._lock_factory(config.logging.lock_file),
                self._notifier_factory(config.notification, hostname),
            )
        if action == "prune":
            return PruneCommand(
                config,
                borg,
                self._clock,
                self._lock_factory(config.logging.lock_file),
                dry_run=getattr(options, "dry_run", False),
            )
        if action == "plan":
            return PlanCommand(config, borg, self._clock)
        if action == "list":
            return ListCommand(config, borg, job_name=getattr(options, "job", None))
        if action == "info":
            return InfoCommand(config, borg)
        if action == "check":
            return CheckCommand(
                config, borg, self._clock, self._lock_factory(config.logging.lock_file)
            )
        if action == "mount":
            return MountCommand(
                borg,
                Path(options.mount_point).expanduser(),
                archive=getattr(options, "archive", None),
                foreground=getattr(options, "foreground", False),
            )
        return UmountCommand(borg, Path(options.mount_point).expanduser())
