from __future__ import annotations

import io
from pathlib import Path

import pytest

from alpine_forge.core.errors import ExtractionError, MountError, PackageToolError
from alpine_forge.utils.archive import extract_member, extract_prefix
from alpine_forge.utils.mounter import Mounter
from alpine_forge.utils.package_tool import ApkStatic
from helpers import FakeRunner, has, make_targz


def test_mounter_commands() -> None:
    runner = FakeRunner()
    mounter = Mounter(runner=runner)

    mounter.mount_proc(Path("/r/proc"))
    mounter.rbind(Path("/sys"), Path("/r/sys"))
    mounter.make_rprivate(Path("/r/sys"))

    assert runner.calls == [
        ["mount", "-t", "proc", "none", "/r/proc"],
        ["mount", "--rbind", "/sys", "/r/sys"],
        ["mount", "--make-rprivate", "/r/sys"],
    ]


def test_mounter_failure() -> None:
    mounter = Mounter(runner=FakeRunner([(has("--bind"), (32, b""))]))

    with pytest.raises(MountError, match="--bind"):
        mounter.bind(Path("/home/me"), Path("/r/home/me"))


def test_apk_static_add_failure_and_unknown_package() -> None:
    runner = FakeRunner([(has("add"), (1, b"")), (has("info"), (1, b""))])
    apk = ApkStatic(Path("/tmp/apk.static"), runner=runner)

    assert apk.knows(Path("/r"), "alpine-release") is False
    with pytest.raises(PackageToolError, match="exit 1"):
        apk.add(Path("/r"), ["busybox"])


def test_extract_member_copies_single_file(tmp_path: Path) -> None:
    archive = tmp_path / "pkg.apk"
    archive.write_bytes(make_targz({"sbin/apk.static": b"bin", "etc/x": b"x"}))

    target = extract_member(archive, "sbin/apk.static", tmp_path / "out" / "apk.static")

    assert target.read_bytes() == b"bin"
    assert not (tmp_path / "out" / "etc").exists()


def test_extract_member_rejects_non_archive(tmp_path: Path) -> None:
    archive = tmp_path / "pkg.apk"
    archive.write_bytes(b"not gzip")

    with pytest.raises(ExtractionError):
        extract_member(archive, "sbin/apk.static", tmp_path / "apk.static")


def test_extract_prefix_without_matches(tmp_path: Path) -> None:
    stream = io.BytesIO(make_targz({"usr/bin/x": b"x"}))

    with pytest.raises(ExtractionError, match="No etc/"):
        extract_prefix(stream, "etc", tmp_path)
