#!/usr/bin/env python3
# alpine-forge/alpine_forge/modules/filesystem_binder.py

"""
Filesystem Binder Module
Binds the host kernel filesystems into the chroot
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.config import BootstrapConfig
from ..core.context import BuildContext
from ..core.errors import MountError
from ..utils.mount_table import PROC_MOUNTS, is_mount_point, read_mount_points
from ..utils.mounter import Mounter


class FilesystemBinder:
    """
    Mounts, in order: proc, /sys (rbind), /dev (rbind), /run/shm when /dev/shm
    is a symlink to it, and the optional bind directory at the same path.

    Every bind is re-marked private so mount events inside the chroot do not
    propagate to the host and the destroy script never unmounts host mounts.
    Targets that are already mount points are left alone, so running the
    bootstrap again does not stack mounts.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        context: BuildContext,
        mounter: Optional[Mounter] = None,
        mount_points: Optional[Callable[[], List[str]]] = None,
        host_root: Path = Path("/"),
    ):
        self.config = config
        self.context = context
        self.mounter = mounter or Mounter()
        self.mount_points = mount_points or (lambda: read_mount_points(PROC_MOUNTS))
        self.host_root = host_root
        self.logger = logging.getLogger(self.__class__.__name__)
        self.chroot_path = config.chroot_dir
        self.mounted: List[str] = []

    def execute(self) -> Dict:
        self.logger.info("Binding filesystems into chroot")

        try:
            active = self.mount_points()
            self._bind_proc(active)
            self._rbind("sys", active)
            self._rbind("dev", active)
            self._bind_run_shm(active)
            self._bind_extra_dir(active)
        except MountError as e:
            self.logger.error(str(e))
            self.logger.error(f"Run {self.chroot_path}/destroy before retrying")
            return {
                'status': 'error',
                'error': str(e),
                'module': self.__class__.__name__,
                'mounted': list(self.mounted),
            }
        except OSError as e:
            self.logger.error(f"Failed to prepare mount point: {e}")
            return {'status': 'error', 'error': str(e), 'module': self.__class__.__name__}

        return {'status': 'success', 'mounted': list(self.mounted)}

    def _target(self, relative: str, active: List[str]) -> Optional[Path]:
        target = self.chroot_path / relative.lstrip('/')
        if is_mount_point(target, active):
            self.logger.info(f"{target} is already mounted, skipping")
            return None
        target.mkdir(parents=True, exist_ok=True)
        return target

    def _bind_proc(self, active: List[str]) -> None:
        target = self._target("proc", active)
        if target is not None:
            self.mounter.mount_proc(target)
            self.mounted.append(str(target))

    def _rbind(self, name: str, active: List[str]) -> None:
        target = self._target(name, active)
        if target is not None:
            self.mounter.rbind(self.host_root / name, target)
            self.mounter.make_rprivate(target)
            self.mounted.append(str(target))

    def _bind_private(self, source: Path, relative: str, active: List[str]) -> None:
        target = self._target(relative, active)
        if target is not None:
            self.mounter.bind(source, target)
            self.mounter.make_private(target)
            self.mounted.append(str(target))

    def _bind_run_shm(self, active: List[str]) -> None:
        dev_shm = self.host_root / "dev" / "shm"
        run_shm = self.host_root / "run" / "shm"
        if dev_shm.is_symlink() and run_shm.is_dir() and not run_shm.is_symlink():
            self._bind_private(run_shm, "run/shm", active)

    def _bind_extra_dir(self, active: List[str]) -> None:
        bind_dir = self.config.bind_dir
        if bind_dir is None:
            return
        if not bind_dir.is_dir():
            self.logger.debug(f"Bind directory {bind_dir} does not exist, skipping")
            return
        self._bind_private(bind_dir, str(bind_dir), active)
