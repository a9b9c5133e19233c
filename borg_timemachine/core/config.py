from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .retention import RetentionPolicy


class Encryption(str, Enum):
    NONE = "none"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_BLAKE2 = "authenticated-blake2"
    REPOKEY = "repokey"
    REPOKEY_BLAKE2 = "repokey-blake2"
    KEYFILE = "keyfile"
    KEYFILE_BLAKE2 = "keyfile-blake2"

    @property
    def needs_passphrase(self) -> bool:
        return self is not Encryption.NONE


@dataclass
class Repository:
    path: str
    encryption: Encryption = Encryption.REPOKEY_BLAKE2


@dataclass
class Job:
    name: str
    source: Path
    destination: str
    enabled: bool = True
    exclude: list[str] = field(default_factory=list)


@dataclass
class Options:
    one_file_system: bool = True
    exclude_caches: bool = True
    show_progress: bool = False
    show_stats: bool = True
    command_timeout: float | None = None


@dataclass
class NotificationSettings:
    enabled: bool = False
    email: str = ""
    transport: str = "mail"
    sender: str | None = None
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_starttls: bool = False
    smtp_username: str | None = None
    smtp_password_file: Path | None = None


@dataclass
class LoggingSettings:
    log_file: Path | None = Path("/var/log/borg-timemachine.log")
    lock_file: Path = Path("/var/run/borg-timemachine.lock")


@dataclass
class Maintenance:
    check_day: int = 0
    auto_compact: bool = True


@dataclass
class Security:
    passphrase_file: Path = Path("/root/.borg-passphrase")


@dataclass
class Config:
    config_file: Path | None
    repository: Repository
    jobs: list[Job]
    retention: RetentionPolicy
    compression: str = "lz4"
    exclusions: list[str] = field(default_factory=list)
    options: Options = field(default_factory=Options)
    notification: NotificationSettings = field(default_factory=NotificationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    maintenance: Maintenance = field(default_factory=Maintenance)
    security: Security = field(default_factory=Security)

    @property
    def enabled_jobs(self) -> list[Job]:
        return [job for job in self.jobs if job.enabled]
