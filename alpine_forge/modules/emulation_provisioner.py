#!/usr/bin/env python3
# alpine-forge/alpine_forge/modules/emulation_provisioner.py

"""
Emulation Provisioner Module.

When the target architecture differs from the host, foreign binaries in the
chroot (starting with apk.static itself) only run through QEMU user-mode
emulation registered with binfmt_misc. This module makes sure the static
emulator is installed on the host, that binfmt_misc has an entry for it, and
copies the emulator into the chroot so the kernel finds it there as well.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.config import BootstrapConfig
from ..core.context import BuildContext
from ..core.errors import AlpineForgeError, EmulationError
from ..utils.arch import needs_emulation, normalize_architecture, qemu_binary_name
from ..utils.host_packages import BINFMT_MISC, HostPackageManager

HOST_BIN_DIR = Path("/usr/bin")


class EmulationProvisioner:
    """Provisions QEMU user-mode emulation for a foreign target architecture"""

    def __init__(
        self,
        config: BootstrapConfig,
        context: BuildContext,
        host_packages: Optional[HostPackageManager] = None,
        host_bin_dir: Path = HOST_BIN_DIR,
        binfmt_dir: Path = BINFMT_MISC,
    ) -> None:
        self.config = config
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)
        self._host_packages = host_packages
        self.host_bin_dir = host_bin_dir
        self.binfmt_dir = binfmt_dir

    @property
    def host_packages(self) -> HostPackageManager:
        # Created on first use so native builds never query the host
        if self._host_packages is None:
            self._host_packages = HostPackageManager(self.context, binfmt_dir=self.binfmt_dir)
        return self._host_packages

    def execute(self) -> Dict[str, Any]:
        """
        Provision emulation if required.

        Returns:
            {'status': 'success', 'emulation': False} for native builds,
            {'status': 'success', 'emulation': True, 'emulator': str} otherwise,
            or an error result.
        """
        if not needs_emulation(self.config.arch, self.config.host_arch):
            self.logger.debug(f"Target {self.config.arch} runs natively on {self.config.host_arch}")
            return {'status': 'success', 'emulation': False}

        qemu_arch = normalize_architecture(self.config.arch)
        emulator = self.host_bin_dir / qemu_binary_name(self.config.arch)

        try:
            if not os.access(emulator, os.X_OK):
                self.logger.info("Installing qemu-user-static on host system...")
                self.host_packages.install_qemu()
                if not os.access(emulator, os.X_OK):
                    raise EmulationError(f"{emulator} is still missing after installing QEMU")

            if not (self.binfmt_dir / f"qemu-{qemu_arch}").exists():
                self.logger.info("Installing and enabling binfmt-support on host system...")
                self.host_packages.setup_binfmt()

            target_dir = self.config.chroot_dir / "usr" / "bin"
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(emulator, target_dir / emulator.name)
            self.logger.info(f"Copied {emulator} to {target_dir}")
        except AlpineForgeError as e:
            self.logger.error(str(e))
            return {'status': 'error', 'error': str(e), 'module': self.__class__.__name__}
        except OSError as e:
            self.logger.error(f"Failed to copy {emulator} into the chroot: {e}")
            return {'status': 'error', 'error': str(e), 'module': self.__class__.__name__}

        # Emulator path as seen from inside the chroot
        self.context.emulator_path = str(Path("/usr/bin") / emulator.name)
        return {'status': 'success', 'emulation': True, 'emulator': self.context.emulator_path}
