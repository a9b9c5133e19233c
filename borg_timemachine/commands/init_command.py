from __future__ import annotations

from ..core.config import Config
from ..core.errors import ExitCode
from ..core.protocols import BorgClientProtocol
from .base import Command


class InitCommand(Command):
    def __init__(self, config: Config, borg: BorgClientProtocol) -> None:
        self._config = config
        self._borg = borg

    def run(self) -> int:
        repository = self._config.repository
        print(f"Initializing Borg repository at: {repository.path}")

        if self._borg.repository_exists():
            print(
                f"Repository already exists at {repository.path}. "
                "Remove it first or use a different path."
            )
            return ExitCode.ENGINE_ERROR

        self._borg.init(repository.encryption)
        print("Repository initialized successfully!")
        if repository.encryption.needs_passphrase:
            print("\nIMPORTANT: Export and backup your encryption key:")
            print(f"  borg key export {repository.path} ~/borg-key-backup.txt")
            print(f"  borg key export --paper {repository.path} borg-key-qr.html")
        return ExitCode.OK
