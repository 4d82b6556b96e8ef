#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/host_packages.py

"""
Host package manager shim.

Installs QEMU user-mode emulation and binfmt_misc support on Debian (apt)
and Arch Linux (pacman) hosts. The package cache is refreshed at most once
per run; the flag lives in the run's BuildContext.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

from ..core.context import BuildContext
from ..core.errors import EmulationError
from .command import Runner, run_command

BINFMT_MISC = Path("/proc/sys/fs/binfmt_misc")


def detect_host_system(which: Callable[[str], Optional[str]] = shutil.which) -> str:
    """Return 'arch', 'debian' or 'unknown' depending on the available package manager."""
    if which("pacman"):
        return "arch"
    if which("apt-get"):
        return "debian"
    return "unknown"


class HostPackageManager:
    """Installs emulation support on the host through apt-get or pacman"""

    def __init__(
        self,
        context: BuildContext,
        runner: Optional[Runner] = None,
        host_system: Optional[str] = None,
        binfmt_dir: Path = BINFMT_MISC,
    ):
        self.context = context
        self.runner = runner or run_command
        self.host_system = host_system or detect_host_system()
        self.binfmt_dir = binfmt_dir
        self.logger = logging.getLogger(self.__class__.__name__)

    def install_qemu(self) -> None:
        if self.host_system == "debian":
            self._install_or_fail(["qemu-user-static"], "Failed to install qemu-user-static using apt-get!")
        elif self.host_system == "arch":
            if not self._install(["qemu-user-static-bin"]) and not self._install(["qemu-arch-extra"]):
                raise EmulationError(
                    "Failed to install qemu-user-static! Try manually: pacman -S qemu-arch-extra"
                )
        else:
            raise EmulationError(
                f"Unsupported operating system for automatic QEMU installation: {self.host_system}"
            )

    def setup_binfmt(self) -> None:
        if self.host_system == "debian":
            self._install_or_fail(["binfmt-support"], "Failed to install binfmt-support using apt-get!")
            self._call_or_fail(["update-binfmts", "--enable"], "Failed to enable binfmt!")
        elif self.host_system == "arch":
            if not self.binfmt_dir.is_dir():
                self._call_or_fail(
                    ["mount", "-t", "binfmt_misc", "none", str(self.binfmt_dir)],
                    "Failed to mount binfmt_misc!",
                )
            if not (self.binfmt_dir / "register").exists():
                raise EmulationError("binfmt_misc is not available in the kernel!")
            self.logger.info("binfmt_misc is already available and configured")
        else:
            raise EmulationError(
                f"Unsupported operating system for automatic binfmt installation: {self.host_system}"
            )

    def _install(self, packages: List[str]) -> bool:
        if self.host_system == "debian":
            if not self.context.host_cache_updated:
                if not self._call(["apt-get", "update"]):
                    return False
                self.context.host_cache_updated = True
            cmd = ["apt-get", "install", "-y", "-o=Dpkg::Use-Pty=0", "--no-install-recommends"]
        else:
            if not self.context.host_cache_updated:
                if not self._call(["pacman", "-Sy"]):
                    return False
                self.context.host_cache_updated = True
            cmd = ["pacman", "-S", "--noconfirm", "--needed"]
        return self._call(cmd + packages)

    def _install_or_fail(self, packages: List[str], message: str) -> None:
        if not self._install(packages):
            raise EmulationError(message)

    def _call_or_fail(self, cmd: List[str], message: str) -> None:
        if not self._call(cmd):
            raise EmulationError(message)

    def _call(self, cmd: List[str]) -> bool:
        self.logger.info(f"Executing: {' '.join(cmd)}")
        try:
            self.runner(cmd, check=True, capture=False)
        except subprocess.CalledProcessError as e:
            self.logger.error(f"Command failed: {' '.join(cmd)} (exit {e.returncode})")
            return False
        except OSError as e:
            self.logger.error(f"Cannot execute {cmd[0]}: {e}")
            return False
        return True
