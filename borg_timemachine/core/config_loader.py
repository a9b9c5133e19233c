from __future__ import annotations

import logging
import os
import re
import stat
from pathlib import Path
from typing import Any

import yaml

from .config import (
    Config,
    Encryption,
    Job,
    LoggingSettings,
    Maintenance,
    NotificationSettings,
    Options,
    Repository,
    Security,
)
from .config_template import DEFAULT_CONFIG_PATH
from .errors import ConfigError, ConfigErrorKind
from .retention import GRANULARITIES, RetentionPolicy, normalize_within

logger = logging.getLogger(__name__)

_VALID_DESTINATION = re.compile(r"[A-Za-z0-9._-]+")
_COMPRESSION_ALGORITHMS = {"none", "lz4", "zstd", "zlib", "lzma", "auto", "obfuscate"}
_TRANSPORTS = {"mail", "smtp"}


class ConfigLoader:
    def __init__(self, default_config_file: Path | str = DEFAULT_CONFIG_PATH) -> None:
        self._default_config_file = Path(default_config_file)

    @property
    def default_config_file(self) -> Path:
        return self._default_config_file

    def load(self, config_path: str | None = None) -> Config:
        config_file = (
            Path(config_path).expanduser() if config_path else self.default_config_file
        )
        if not config_file.is_file():
            raise ConfigError(
                ConfigErrorKind.MALFORMED,
                str(config_file),
                "config file not found",
            )
        try:
            text = config_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(
                ConfigErrorKind.MALFORMED, str(config_file), f"cannot read file: {exc}"
            ) from exc
        return self.parse(text, config_file)

    def parse(self, text: str, config_file: Path | None = None) -> Config:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(
                ConfigErrorKind.MALFORMED, "<document>", f"invalid YAML: {exc}"
            ) from exc
        if not isinstance(document, dict):
            raise ConfigError(
                ConfigErrorKind.MALFORMED, "<document>", "expected a mapping at the top level"
            )

        repository = self._parse_repository(self._section(document, "repository", required=True))
        jobs = self._parse_jobs(self._require(document, "jobs", "jobs"))
        retention = self._parse_retention(self._section(document, "retention", required=True))
        notification_key = "notifications" if "notifications" in document else "notification"

        return Config(
            config_file=config_file,
            repository=repository,
            jobs=jobs,
            retention=retention,
            compression=self._parse_compression(document.get("compression", "lz4")),
            exclusions=self._str_list(document.get("exclusions"), "exclusions"),
            options=self._parse_options(self._section(document, "options")),
            notification=self._parse_notification(
                self._section(document, notification_key), notification_key
            ),
            logging=self._parse_logging(self._section(document, "logging")),
            maintenance=self._parse_maintenance(self._section(document, "maintenance")),
            security=self._parse_security(self._section(document, "security")),
        )

    def load_passphrase(self, config: Config) -> str | None:
        if not config.repository.encryption.needs_passphrase:
            return None
        passphrase_file = config.security.passphrase_file
        try:
            mode = passphrase_file.stat().st_mode
            passphrase = passphrase_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "security.passphrase_file",
                f"cannot read {passphrase_file}: {exc.strerror or exc}",
            ) from exc
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            logger.warning(
                "Passphrase file %s is accessible by group or others; run: chmod 600 %s",
                passphrase_file,
                passphrase_file,
            )
        if not passphrase:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "security.passphrase_file",
                f"{passphrase_file} is empty",
            )
        return passphrase

    def _parse_repository(self, section: dict[str, Any]) -> Repository:
        path = self._str(self._require(section, "path", "repository.path"), "repository.path")
        if not path.strip():
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE, "repository.path", "must not be empty"
            )
        raw_encryption = self._require(section, "encryption", "repository.encryption")
        try:
            encryption = Encryption(str(raw_encryption))
        except ValueError as exc:
            choices = ", ".join(mode.value for mode in Encryption)
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "repository.encryption",
                f"unknown mode {raw_encryption!r}, expected one of: {choices}",
            ) from exc
        return Repository(path=self._expand(path), encryption=encryption)

    def _parse_jobs(self, raw_jobs: Any) -> list[Job]:
        if not isinstance(raw_jobs, list):
            raise ConfigError(ConfigErrorKind.MALFORMED, "jobs", "expected a list of jobs")

        jobs: list[Job] = []
        names: set[str] = set()
        destinations: dict[str, str] = {}
        for index, raw_job in enumerate(raw_jobs):
            prefix = f"jobs[{index}]"
            if not isinstance(raw_job, dict):
                raise ConfigError(ConfigErrorKind.MALFORMED, prefix, "expected a mapping")

            name = self._str(self._require(raw_job, "name", f"{prefix}.name"), f"{prefix}.name")
            if not name.strip():
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE, f"{prefix}.name", "must not be empty"
                )
            if name in names:
                raise ConfigError(
                    ConfigErrorKind.DUPLICATE_JOB_NAME,
                    f"{prefix}.name",
                    f"job name {name!r} is already used",
                )
            names.add(name)

            source = self._str(
                self._require(raw_job, "source", f"{prefix}.source"), f"{prefix}.source"
            )
            if not source.strip():
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE, f"{prefix}.source", "must not be empty"
                )

            destination = self._str(
                self._require(raw_job, "destination", f"{prefix}.destination"),
                f"{prefix}.destination",
            )
            self._validate_destination(destination, f"{prefix}.destination", destinations)
            destinations[destination] = name

            jobs.append(
                Job(
                    name=name,
                    source=self._path(source),
                    destination=destination,
                    enabled=self._bool(raw_job.get("enabled", True), f"{prefix}.enabled"),
                    exclude=self._str_list(raw_job.get("exclude"), f"{prefix}.exclude"),
                )
            )
        return jobs

    def _validate_destination(
        self,
        destination: str,
        field: str,
        seen: dict[str, str],
    ) -> None:
        if not _VALID_DESTINATION.fullmatch(destination):
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                field,
                f"{destination!r} is not a valid archive prefix "
                "(letters, digits, '.', '_' and '-' only)",
            )
        for other, owner in seen.items():
            if destination == other:
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE,
                    field,
                    f"destination {destination!r} is already used by job {owner!r}",
                )
            # borg prune selects archives by "<destination>-*"
            if destination.startswith(f"{other}-") or other.startswith(f"{destination}-"):
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE,
                    field,
                    f"destination {destination!r} overlaps with {other!r} of job {owner!r}",
                )

    def _parse_retention(self, section: dict[str, Any]) -> RetentionPolicy:
        raw_within = self._require(section, "within", "retention.within")
        try:
            within = normalize_within(str(raw_within))
        except ValueError as exc:
            raise ConfigError(ConfigErrorKind.INVALID_VALUE, "retention.within", str(exc)) from exc

        counts: dict[str, int] = {}
        for granularity in GRANULARITIES:
            field = f"retention.{granularity}"
            count = self._int(section.get(granularity, 0), field)
            if count < 0:
                raise ConfigError(ConfigErrorKind.INVALID_VALUE, field, "must be >= 0")
            counts[granularity] = count
        return RetentionPolicy(within=within, **counts)

    def _parse_compression(self, value: Any) -> str:
        compression = self._str(value, "compression").strip()
        algorithm = compression.split(",", 1)[0]
        if algorithm not in _COMPRESSION_ALGORITHMS:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "compression",
                f"unknown compression {compression!r}",
            )
        return compression

    def _parse_options(self, section: dict[str, Any]) -> Options:
        defaults = Options()
        timeout = section.get("command_timeout")
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ConfigError(
                    ConfigErrorKind.INVALID_VALUE,
                    "options.command_timeout",
                    "must be a positive number of seconds or null",
                )
            timeout = float(timeout)
        return Options(
            one_file_system=self._bool(
                section.get("one_file_system", defaults.one_file_system),
                "options.one_file_system",
            ),
            exclude_caches=self._bool(
                section.get("exclude_caches", defaults.exclude_caches),
                "options.exclude_caches",
            ),
            show_progress=self._bool(
                section.get("show_progress", defaults.show_progress),
                "options.show_progress",
            ),
            show_stats=self._bool(
                section.get("show_stats", defaults.show_stats), "options.show_stats"
            ),
            command_timeout=timeout,
        )

    def _parse_notification(self, section: dict[str, Any], key: str) -> NotificationSettings:
        defaults = NotificationSettings()
        enabled = self._bool(section.get("enabled", defaults.enabled), f"{key}.enabled")
        email = self._str(section.get("email", defaults.email), f"{key}.email")
        if enabled and not email.strip():
            raise ConfigError(
                ConfigErrorKind.MISSING_FIELD,
                f"{key}.email",
                "required when notifications are enabled",
            )
        if any(char.isspace() for char in email):
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"{key}.email",
                f"{email!r} must be a single address without whitespace",
            )
        transport = self._str(section.get("transport", defaults.transport), f"{key}.transport")
        if transport not in _TRANSPORTS:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                f"{key}.transport",
                f"unknown transport {transport!r}, expected 'mail' or 'smtp'",
            )
        password_file = section.get("smtp_password_file")
        sender = section.get("sender")
        username = section.get("smtp_username")
        return NotificationSettings(
            enabled=enabled,
            email=email,
            transport=transport,
            sender=self._str(sender, f"{key}.sender") if sender else None,
            smtp_host=self._str(section.get("smtp_host", defaults.smtp_host), f"{key}.smtp_host"),
            smtp_port=self._int(section.get("smtp_port", defaults.smtp_port), f"{key}.smtp_port"),
            smtp_starttls=self._bool(
                section.get("smtp_starttls", defaults.smtp_starttls), f"{key}.smtp_starttls"
            ),
            smtp_username=self._str(username, f"{key}.smtp_username") if username else None,
            smtp_password_file=(
                self._path(self._str(password_file, f"{key}.smtp_password_file"))
                if password_file
                else None
            ),
        )

    def _parse_logging(self, section: dict[str, Any]) -> LoggingSettings:
        defaults = LoggingSettings()
        log_file = section.get("log_file", defaults.log_file)
        lock_file = section.get("lock_file", defaults.lock_file)
        return LoggingSettings(
            log_file=self._path(self._str(log_file, "logging.log_file")) if log_file else None,
            lock_file=self._path(self._str(lock_file, "logging.lock_file")),
        )

    def _parse_maintenance(self, section: dict[str, Any]) -> Maintenance:
        defaults = Maintenance()
        check_day = self._int(
            section.get("check_day", defaults.check_day), "maintenance.check_day"
        )
        if not 0 <= check_day <= 7:
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE,
                "maintenance.check_day",
                "must be 0 (never) or an ISO weekday 1-7",
            )
        return Maintenance(
            check_day=check_day,
            auto_compact=self._bool(
                section.get("auto_compact", defaults.auto_compact), "maintenance.auto_compact"
            ),
        )

    def _parse_security(self, section: dict[str, Any]) -> Security:
        defaults = Security()
        passphrase_file = section.get("passphrase_file", defaults.passphrase_file)
        return Security(
            passphrase_file=self._path(self._str(passphrase_file, "security.passphrase_file"))
        )

    def _section(
        self,
        document: dict[str, Any],
        key: str,
        *,
        required: bool = False,
    ) -> dict[str, Any]:
        if required:
            value = self._require(document, key, key)
        else:
            value = document.get(key)
            if value is None:
                return {}
        if not isinstance(value, dict):
            raise ConfigError(ConfigErrorKind.MALFORMED, key, "expected a mapping")
        return value

    def _require(self, mapping: dict[str, Any], key: str, field: str) -> Any:
        if mapping.get(key) is None:
            raise ConfigError(ConfigErrorKind.MISSING_FIELD, field, "is required")
        return mapping[key]

    def _str(self, value: Any, field: str) -> str:
        if isinstance(value, (str, Path)):
            return str(value)
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE, field, f"expected a string, got {value!r}"
        )

    def _int(self, value: Any, field: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE, field, f"expected an integer, got {value!r}"
            )
        return value

    def _bool(self, value: Any, field: str) -> bool:
        if not isinstance(value, bool):
            raise ConfigError(
                ConfigErrorKind.INVALID_VALUE, field, f"expected true or false, got {value!r}"
            )
        return value

    def _str_list(self, value: Any, field: str) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ConfigError(ConfigErrorKind.MALFORMED, field, "expected a list")
        return [self._str(item, f"{field}[{index}]") for index, item in enumerate(value)]

    def _expand(self, value: str) -> str:
        return os.path.expanduser(os.path.expandvars(value.strip()))

    def _path(self, value: str) -> Path:
        return Path(self._expand(value))
