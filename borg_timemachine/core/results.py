from __future__ import annotations

from dataclasses import dataclass

WARNING_CODES = frozenset({1, *range(100, 128)})


def is_success(returncode: int | None) -> bool:
    return returncode == 0 or returncode in WARNING_CODES


@dataclass
class RunResult:
    name: str
    returncode: int | None
    output: str = ""
    duration: float = 0.0
    archive: str | None = None

    @property
    def success(self) -> bool:
        return is_success(self.returncode)

    @property
    def warning(self) -> bool:
        return self.returncode in WARNING_CODES

    @property
    def status(self) -> str:
        if self.returncode is None:
            return "n/a"
        return str(self.returncode)
