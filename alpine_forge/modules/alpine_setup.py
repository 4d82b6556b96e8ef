#!/usr/bin/env python3
# alpine-forge/alpine_forge/modules/alpine_setup.py

"""
Alpine Setup Module
Installs the requested packages inside the chroot and prepares the invoking
user, by feeding a shell script to enter-chroot
"""

import logging
import os
import shlex
import subprocess
from typing import Dict, List, Mapping, Optional

from ..core.config import BootstrapConfig
from ..core.context import BuildContext
from ..utils.command import Runner, run_command
from .lifecycle_scripts import ENTER_SCRIPT


def render_setup_script(packages: List[str], environ: Mapping[str, str]) -> str:
    """
    Shell script run as root inside the chroot.

    The sudo user (if any) is resolved on the host side, like the rest of
    the invocation environment.
    """
    lines = ["set -e", "apk update"]
    if packages:
        lines.append("apk add " + " ".join(shlex.quote(p) for p in packages))
    lines += [
        "",
        "if [ -d /etc/sudoers.d ] && [ ! -e /etc/sudoers.d/wheel ]; then",
        "    echo '%wheel ALL=(ALL) NOPASSWD: ALL' > /etc/sudoers.d/wheel",
        "fi",
    ]
    sudo_user = environ.get("SUDO_USER")
    if sudo_user:
        uid = environ.get("SUDO_UID") or "1000"
        lines += [
            "",
            f"adduser -u {shlex.quote(uid)} -G users -s /bin/sh -D {shlex.quote(sudo_user)} || true",
        ]
    return "\n".join(lines) + "\n"


class AlpineSetup:
    """Runs the package installation inside the finished chroot"""

    def __init__(
        self,
        config: BootstrapConfig,
        context: BuildContext,
        runner: Optional[Runner] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.context = context
        self.runner = runner or run_command
        self.environ = os.environ if environ is None else environ
        self.logger = logging.getLogger(self.__class__.__name__)

    def execute(self) -> Dict:
        self.logger.info("Setting up Alpine")

        enter = self.config.chroot_dir / ENTER_SCRIPT
        script = render_setup_script(list(self.config.packages), self.environ)
        self.logger.debug(f"Setup script:\n{script}")

        try:
            self.runner([str(enter)], check=True, capture=False, input=script.encode())
        except subprocess.CalledProcessError as e:
            error = f"Setup inside the chroot failed with exit code {e.returncode}"
            self.logger.error(error)
            return {'status': 'error', 'error': error, 'module': self.__class__.__name__}
        except OSError as e:
            self.logger.error(f"Cannot run {enter}: {e}")
            return {'status': 'error', 'error': str(e), 'module': self.__class__.__name__}

        return {'status': 'success', 'packages': ' '.join(self.config.packages)}
