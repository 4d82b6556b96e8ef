from __future__ import annotations

import json
from pathlib import Path

import pytest

from alpine_forge.core.lockfile import BuildLockfile
from alpine_forge.utils.apkindex import PackageRecord


def test_records_survive_reload(tmp_path: Path) -> None:
    path = tmp_path / "rootfs" / ".alpine-forge.lock"
    lockfile = BuildLockfile(path)
    lockfile.record_package(PackageRecord(name="alpine-keys", version="2.4-r1", arch="x86_64", license="MIT"))
    lockfile.record_file_checksum("alpine-keys-2.4-r1.apk", "sha256", "ab" * 32)
    lockfile.save()

    reloaded = BuildLockfile(path)

    assert reloaded.get_package_version("alpine-keys") == "2.4-r1"
    assert reloaded.get_package_version("busybox") is None
    assert reloaded.lock_data["checksums"]["alpine-keys-2.4-r1.apk"]["algorithm"] == "sha256"
    assert "last_updated" in reloaded.lock_data


def test_module_results_keep_scalars_only(tmp_path: Path) -> None:
    lockfile = BuildLockfile(tmp_path / "lock")

    lockfile.record_module_execution("FilesystemBinder", {"status": "success", "mounted": ["/proc"], "count": 1})

    entry = lockfile.lock_data["modules"]["FilesystemBinder"]
    assert entry["status"] == "success"
    assert entry["count"] == 1
    assert "mounted" not in entry
    assert "timestamp" in entry


def test_missing_sections_are_added(tmp_path: Path) -> None:
    path = tmp_path / "lock"
    path.write_text(json.dumps({"created": "2024-01-01T00:00:00+00:00"}))

    lockfile = BuildLockfile(path)

    assert lockfile.lock_data["packages"] == {}
    assert lockfile.lock_data["modules"] == {}


@pytest.mark.parametrize("content", ['{"packages": {', "[1, 2]", '{"packages": []}', "\udcff"])
def test_unreadable_lockfile_starts_fresh(tmp_path: Path, content: str) -> None:
    path = tmp_path / ".alpine-forge.lock"
    path.write_bytes(content.encode("utf-8", "surrogateescape"))

    lockfile = BuildLockfile(path)
    lockfile.record_package(PackageRecord(name="busybox", version="1.36.1-r29"))
    lockfile.save()

    assert json.loads(path.read_text())["packages"]["busybox"]["version"] == "1.36.1-r29"


def test_save_leaves_no_temporary_files(tmp_path: Path) -> None:
    lockfile = BuildLockfile(tmp_path / ".alpine-forge.lock")

    lockfile.save()
    lockfile.save()

    assert [p.name for p in tmp_path.iterdir()] == [".alpine-forge.lock"]
