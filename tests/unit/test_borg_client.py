from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import pytest

from borg_timemachine.core.borg_client import BorgClient
from borg_timemachine.core.config import Config, Encryption
from borg_timemachine.core.errors import EngineError


class RunRecorder:
    def __init__(
        self,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: BaseException | None = None,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls: list[dict[str, Any]] = []

    def __call__(self, cmd: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append({"cmd": cmd, **kwargs})
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(
            cmd, self.returncode, stdout=self.stdout, stderr=self.stderr
        )

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1]


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> RunRecorder:
    fake = RunRecorder()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


def test_run_builds_command_and_env(sample_config: Config, recorder: RunRecorder) -> None:
    client = BorgClient(sample_config, "s3cret")

    client.run(["list", "repo"], capture_output=True)

    assert recorder.last["cmd"] == ["borg", "list", "repo"]
    assert recorder.last["capture_output"] is True
    assert recorder.last["check"] is False
    assert recorder.last["text"] is True
    assert recorder.last["env"]["BORG_PASSPHRASE"] == "s3cret"


def test_run_drops_inherited_passphrase_without_one(
    sample_config: Config,
    recorder: RunRecorder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("BORG_PASSPHRASE", "from-the-shell")

    BorgClient(sample_config).run(["list", "repo"])

    assert "BORG_PASSPHRASE" not in recorder.last["env"]


def test_passphrase_never_appears_in_arguments(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    client = BorgClient(sample_config, "s3cret")

    client.create("home-2026-02-16T010203Z", Path("/home"), [])
    client.prune(["--keep-within=24H"])

    for call in recorder.calls:
        assert all("s3cret" not in part for part in call["cmd"])


def test_create_builds_archive_arguments(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.stdout = "Archive name: home-2026-02-16T010203Z\n"
    client = BorgClient(sample_config, "s3cret")

    result = client.create(
        "home-2026-02-16T010203Z",
        Path("/home"),
        ["*/.cache/*", "*.tmp"],
    )

    repo = sample_config.repository.path
    assert recorder.last["cmd"] == [
        "borg",
        "create",
        "--compression=lz4",
        "--stats",
        "--one-file-system",
        "--exclude-caches",
        "--exclude",
        "*/.cache/*",
        "--exclude",
        "*.tmp",
        f"{repo}::home-2026-02-16T010203Z",
        "/home",
    ]
    assert result.name == "create"
    assert result.archive == "home-2026-02-16T010203Z"
    assert result.success is True
    assert "Archive name" in result.output


def test_create_honours_option_flags(sample_config: Config, recorder: RunRecorder) -> None:
    sample_config.options.show_stats = False
    sample_config.options.show_progress = True
    sample_config.options.one_file_system = False
    sample_config.options.exclude_caches = False
    sample_config.compression = "zstd,3"

    BorgClient(sample_config).create("etc-x", Path("/etc"), [])

    assert recorder.last["cmd"][1:4] == ["create", "--compression=zstd,3", "--progress"]
    assert "--one-file-system" not in recorder.last["cmd"]
    assert "--exclude-caches" not in recorder.last["cmd"]


def test_create_warning_exit_status_is_success(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    recorder.returncode = 1
    recorder.stderr = "file changed while we backed it up\n"

    result = BorgClient(sample_config).create("home-x", Path("/home"), [])

    assert result.success is True
    assert result.warning is True
    assert "file changed" in result.output


def test_create_error_exit_status_raises_engine_error(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    recorder.returncode = 2
    recorder.stderr = "Repository does not exist.\n"

    with pytest.raises(EngineError) as exc:
        BorgClient(sample_config).create("home-x", Path("/home"), [])

    assert exc.value.operation == "create"
    assert exc.value.returncode == 2
    assert exc.value.stderr == "Repository does not exist.\n"
    assert exc.value.retryable is False
    assert "Repository does not exist." in str(exc.value)


def test_lock_contention_is_retryable(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.returncode = 2
    recorder.stderr = "Failed to create/acquire the lock /repo/lock.exclusive (timeout).\n"

    with pytest.raises(EngineError) as exc:
        BorgClient(sample_config).prune([])

    assert exc.value.retryable is True


def test_missing_executable_raises_engine_error(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    recorder.raises = FileNotFoundError("borg")

    with pytest.raises(EngineError, match="borg executable not found") as exc:
        BorgClient(sample_config).check()

    assert exc.value.returncode is None
    assert exc.value.retryable is False


def test_timeout_raises_retryable_engine_error(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    sample_config.options.command_timeout = 5.0
    recorder.raises = subprocess.TimeoutExpired(["borg"], 5.0)

    with pytest.raises(EngineError, match="timed out after 5.0 seconds") as exc:
        BorgClient(sample_config).compact()

    assert recorder.last["timeout"] == 5.0
    assert exc.value.retryable is True


def test_prune_passes_directives_and_dry_run(sample_config: Config, recorder: RunRecorder) -> None:
    BorgClient(sample_config).prune(
        ["--glob-archives=home-*", "--keep-within=24H"], dry_run=True
    )

    assert recorder.last["cmd"] == [
        "borg",
        "prune",
        "--list",
        "--dry-run",
        "--glob-archives=home-*",
        "--keep-within=24H",
        sample_config.repository.path,
    ]


def test_init_compact_and_check_target_repository(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    client = BorgClient(sample_config)
    repo = sample_config.repository.path

    client.init(Encryption.REPOKEY_BLAKE2)
    client.compact()
    client.check()

    assert [call["cmd"] for call in recorder.calls] == [
        ["borg", "init", "--encryption=repokey-blake2", repo],
        ["borg", "compact", repo],
        ["borg", "check", repo],
    ]


def test_repository_exists_reflects_info_status(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    client = BorgClient(sample_config)

    assert client.repository_exists() is True
    recorder.returncode = 2
    assert client.repository_exists() is False
    recorder.raises = FileNotFoundError("borg")
    assert client.repository_exists() is False


def test_list_archives_parses_json(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.stdout = json.dumps(
        {
            "archives": [
                {"name": "home-a", "id": "aa", "time": "2026-02-15T10:00:00.000000"},
                {"archive": "home-b", "id": "bb", "start": "2026-02-16T10:00:00.000000"},
            ]
        }
    )

    archives = BorgClient(sample_config).list_archives(glob="home-*")

    assert recorder.last["cmd"] == [
        "borg",
        "list",
        "--json",
        "--glob-archives=home-*",
        sample_config.repository.path,
    ]
    assert [archive.name for archive in archives] == ["home-a", "home-b"]
    assert archives[1].time.day == 16
    assert archives[0].id == "aa"


def test_list_archives_raises_on_invalid_json(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    recorder.stdout = "not-json"

    with pytest.raises(EngineError, match="Could not parse borg list JSON"):
        BorgClient(sample_config).list_archives()


def test_list_archives_raises_on_unexpected_payload(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    recorder.stdout = json.dumps({"archives": {"name": "home-a"}})

    with pytest.raises(EngineError, match="Unexpected archive list payload"):
        BorgClient(sample_config).list_archives()


def test_list_archives_raises_on_bad_entry(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.stdout = json.dumps({"archives": [{"name": "home-a", "time": "yesterday"}]})

    with pytest.raises(EngineError, match="Could not parse archive entry"):
        BorgClient(sample_config).list_archives()


def test_info_parses_repository_stats(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.stdout = json.dumps(
        {
            "repository": {
                "id": "abc123",
                "location": "/srv/borg",
                "last_modified": "2026-02-16T01:02:03.000000",
            },
            "encryption": {"mode": "repokey-blake2"},
            "cache": {
                "stats": {"total_size": 2048, "total_csize": 1024, "unique_csize": 512}
            },
        }
    )

    info = BorgClient(sample_config).info()

    assert recorder.last["cmd"] == ["borg", "info", "--json", sample_config.repository.path]
    assert info.id == "abc123"
    assert info.location == "/srv/borg"
    assert info.encryption == "repokey-blake2"
    assert info.total_size == 2048
    assert info.unique_csize == 512


def test_info_raises_on_non_mapping_payload(sample_config: Config, recorder: RunRecorder) -> None:
    recorder.stdout = json.dumps([1, 2, 3])

    with pytest.raises(EngineError, match="Unexpected info payload format"):
        BorgClient(sample_config).info()


def test_mount_targets_archive_and_skips_timeout(
    sample_config: Config,
    recorder: RunRecorder,
) -> None:
    sample_config.options.command_timeout = 5.0
    client = BorgClient(sample_config)

    client.mount(Path("/mnt/borg"), archive="home-a", foreground=True)

    assert recorder.last["cmd"] == [
        "borg",
        "mount",
        "--foreground",
        f"{sample_config.repository.path}::home-a",
        "/mnt/borg",
    ]
    assert recorder.last["capture_output"] is False
    assert recorder.last["timeout"] is None


def test_mount_and_umount_whole_repository(sample_config: Config, recorder: RunRecorder) -> None:
    client = BorgClient(sample_config)

    client.mount(Path("/mnt/borg"))
    client.umount(Path("/mnt/borg"))

    assert recorder.calls[0]["cmd"] == [
        "borg",
        "mount",
        sample_config.repository.path,
        "/mnt/borg",
    ]
    assert recorder.calls[0]["capture_output"] is True
    assert recorder.calls[1]["cmd"] == ["borg", "umount", "/mnt/borg"]
