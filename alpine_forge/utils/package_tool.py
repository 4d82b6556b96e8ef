#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/package_tool.py

"""
Wrapper around the static apk binary (apk.static) extracted from
apk-tools-static. All operations target an alternate root via --root.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from ..core.errors import PackageToolError
from .command import Runner, run_command


class ApkStatic:
    """Runs apk.static against a chroot directory"""

    def __init__(self, binary: Path, runner: Optional[Runner] = None):
        self.binary = Path(binary)
        self.runner = runner or run_command
        self.logger = logging.getLogger(self.__class__.__name__)

    def add(
        self,
        root: Path,
        packages: List[str],
        arch: Optional[str] = None,
        initdb: bool = False,
        update_cache: bool = False,
    ) -> None:
        """
        Install packages into root.

        Args:
            root: Chroot directory.
            packages: Package names.
            arch: Target architecture passed as --arch.
            initdb: Initialize a new package database.
            update_cache: Refresh the repository indexes first.
        """
        args = ["add", "--root", str(root)]
        if update_cache:
            args.append("--update-cache")
        if initdb:
            args.append("--initdb")
        args.append("--no-progress")
        if arch:
            args += ["--arch", arch]
        self._run(args + list(packages), capture=False)

    def knows(self, root: Path, package: str) -> bool:
        """True if the package database in root knows about package."""
        cmd = [str(self.binary), "info", "--root", str(root), "--no-progress", "--quiet", package]
        self.logger.debug(f"Executing: {' '.join(cmd)}")
        try:
            result = self.runner(cmd, check=False)
        except OSError as e:
            raise PackageToolError(f"Cannot execute {self.binary}: {e}") from e
        return result.returncode == 0

    def fetch_stdout(self, root: Path, package: str) -> bytes:
        """Download package without installing it and return the raw .apk bytes."""
        result = self._run(["fetch", "--root", str(root), "--no-progress", "--stdout", package], capture=True)
        return result.stdout or b''

    def _run(self, args: List[str], capture: bool) -> subprocess.CompletedProcess:
        cmd = [str(self.binary)] + args
        self.logger.info(f"apk {' '.join(args)}")
        try:
            return self.runner(cmd, check=True, capture=capture)
        except subprocess.CalledProcessError as e:
            raise PackageToolError(f"Command failed: {' '.join(cmd)} (exit {e.returncode})") from e
        except OSError as e:
            raise PackageToolError(f"Cannot execute {self.binary}: {e}") from e
