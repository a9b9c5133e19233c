from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Archive:
    name: str
    time: datetime
    id: str = ""

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "Archive":
        name = str(payload.get("name") or payload.get("archive") or "")
        raw_time = str(payload.get("time") or payload.get("start") or "")
        return cls(
            name=name,
            time=datetime.fromisoformat(raw_time),
            id=str(payload.get("id", "")),
        )


@dataclass
class RepositoryInfo:
    location: str
    id: str
    encryption: str
    last_modified: str
    total_size: int = 0
    total_csize: int = 0
    unique_csize: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "RepositoryInfo":
        repository = payload.get("repository") or {}
        encryption = payload.get("encryption") or {}
        stats = (payload.get("cache") or {}).get("stats") or {}
        return cls(
            location=str(repository.get("location", "")),
            id=str(repository.get("id", "")),
            encryption=str(encryption.get("mode", "")),
            last_modified=str(repository.get("last_modified", "")),
            total_size=int(stats.get("total_size", 0)),
            total_csize=int(stats.get("total_csize", 0)),
            unique_csize=int(stats.get("unique_csize", 0)),
            raw=payload,
        )
