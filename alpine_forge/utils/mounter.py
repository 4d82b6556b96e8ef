#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/mounter.py

"""
Mounter collaborator.
Wraps mount(8) so the filesystem binder can be exercised with a fake.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from ..core.errors import MountError
from .command import Runner, run_command


class Mounter:
    """Issues mount(8) calls; any failure raises MountError."""

    def __init__(self, runner: Optional[Runner] = None):
        self.runner = runner or run_command
        self.logger = logging.getLogger(self.__class__.__name__)

    def mount_proc(self, target: Path) -> None:
        self._mount(["-t", "proc", "none", str(target)])

    def rbind(self, source: Path, target: Path) -> None:
        self._mount(["--rbind", str(source), str(target)])

    def bind(self, source: Path, target: Path) -> None:
        self._mount(["--bind", str(source), str(target)])

    def make_rprivate(self, target: Path) -> None:
        self._mount(["--make-rprivate", str(target)])

    def make_private(self, target: Path) -> None:
        self._mount(["--make-private", str(target)])

    def _mount(self, args: List[str]) -> None:
        cmd = ["mount"] + args
        self.logger.info(f"mount {' '.join(args)}")
        try:
            self.runner(cmd, check=True)
        except (subprocess.CalledProcessError, OSError) as e:
            raise MountError(f"Command failed: {' '.join(cmd)} - {e}") from e
