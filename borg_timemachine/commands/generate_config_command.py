from __future__ import annotations

from pathlib import Path

from ..core.config_template import DEFAULT_CONFIG_TEMPLATE
from ..core.errors import ExitCode
from .base import Command


class GenerateConfigCommand(Command):
    def __init__(self, output: Path, *, force: bool = False) -> None:
        self._output = output
        self._force = force

    def run(self) -> int:
        if self._output.exists() and not self._force:
            print(f"Refusing to overwrite existing file: {self._output} (use --force)")
            return ExitCode.JOB_FAILURE
        try:
            self._output.parent.mkdir(parents=True, exist_ok=True)
            self._output.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
        except OSError as exc:
            print(f"Failed to write example config: {exc}")
            return ExitCode.JOB_FAILURE
        print(f"Example configuration written to: {self._output}")
        return ExitCode.OK
