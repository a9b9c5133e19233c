from __future__ import annotations

from datetime import datetime, timezone


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone()

    def now_iso(self) -> str:
        return self.now().isoformat(timespec="seconds")

    def timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H%M%SZ")
