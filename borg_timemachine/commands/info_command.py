from __future__ import annotations

from ..core.config import Config
from ..core.errors import ExitCode
from ..core.protocols import BorgClientProtocol
from .base import Command


def human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "kB", "MB", "GB"):
        if value < 1000:
            return f"{int(value)} B" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1000
    return f"{value:.2f} TB"


class InfoCommand(Command):
    def __init__(self, config: Config, borg: BorgClientProtocol) -> None:
        self._config = config
        self._borg = borg

    def run(self) -> int:
        info = self._borg.info()
        archives = self._borg.list_archives()
        lines = [
            f"Repository: {info.location or self._config.repository.path}",
            f"Repository ID: {info.id}",
            f"Encryption: {info.encryption}",
            f"Last modified: {info.last_modified}",
            f"Archives: {len(archives)}",
            f"Original size: {human_size(info.total_size)}",
            f"Compressed size: {human_size(info.total_csize)}",
            f"Deduplicated size: {human_size(info.unique_csize)}",
        ]
        if archives:
            latest = max(archives, key=lambda item: (item.time, item.name))
            lines.append(f"Latest archive: {latest.name}")
        print("\n".join(lines))
        return ExitCode.OK
