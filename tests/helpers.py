"""Test doubles shared by the test modules."""

from __future__ import annotations

import io
import subprocess
import tarfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

from alpine_forge.core.config import BootstrapConfig
from alpine_forge.core.errors import MountError, TransportError


def make_config(tmp_path: Path, **overrides) -> BootstrapConfig:
    values = {
        "arch": "x86_64",
        "host_arch": "x86_64",
        "branch": "v3.20",
        "mirror": "https://mirror.test/alpine",
        "chroot_dir": tmp_path / "rootfs",
        "temp_dir": tmp_path / "tmp",
    }
    values.update(overrides)
    return BootstrapConfig(**values)


def make_targz(files: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def index_block(**fields: str) -> str:
    return "".join(f"{key}:{value}\n" for key, value in fields.items()) + "\n"


class FakeTransport:
    def __init__(self, files: Dict[str, bytes]) -> None:
        self.files = files
        self.requested: List[str] = []

    def download(self, url, output) -> int:
        self.requested.append(url)
        if url not in self.files:
            raise TransportError(f"Failed to download {url}: 404")
        data = self.files[url]
        if isinstance(output, (str, Path)):
            Path(output).write_bytes(data)
        else:
            output.write(data)
        return len(data)


class FakeRunner:
    """Records commands; `results` maps a predicate to (returncode, stdout)."""

    def __init__(self, results: Optional[List[tuple]] = None) -> None:
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[bytes]] = []
        self.results = results or []

    def __call__(self, cmd, check=True, capture=True, input=None):
        self.calls.append(list(cmd))
        self.inputs.append(input)
        returncode, stdout = 0, b""
        for predicate, result in self.results:
            if predicate(cmd):
                returncode, stdout = result
                break
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=b"")


def has(*words: str) -> Callable[[List[str]], bool]:
    return lambda cmd: all(word in cmd for word in words)


class FakeMounter:
    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.calls: List[tuple] = []
        self.fail_on = fail_on

    def _record(self, op: str, *paths: Path) -> None:
        if op == self.fail_on:
            raise MountError(f"Command failed: mount {op}")
        self.calls.append((op,) + tuple(str(p) for p in paths))

    def mount_proc(self, target):
        self._record("proc", target)

    def rbind(self, source, target):
        self._record("rbind", source, target)

    def bind(self, source, target):
        self._record("bind", source, target)

    def make_rprivate(self, target):
        self._record("make-rprivate", target)

    def make_private(self, target):
        self._record("make-private", target)
