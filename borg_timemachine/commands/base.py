from __future__ import annotations

from abc import ABC, abstractmethod


class Command(ABC):
    """One CLI action bound to its collaborators."""

    @abstractmethod
    def run(self) -> int:
        """Execute the action and return the process exit code."""
        raise NotImplementedError
