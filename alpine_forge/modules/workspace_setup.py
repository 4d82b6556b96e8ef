#!/usr/bin/env python3
"""
Workspace Setup Module
Creates the chroot directory, the scratch directory and the mount points
"""

import logging
from typing import Dict

from ..core.config import BootstrapConfig
from ..core.context import BuildContext

MOUNT_POINTS = ("proc", "sys", "dev")


class WorkspaceSetup:
    """Creates the directories every later module relies on"""

    def __init__(self, config: BootstrapConfig, context: BuildContext):
        """
        Initialize workspace setup module

        Args:
            config: Bootstrap configuration
            context: State of the current run
        """

        self.config = config
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)
        self.chroot_path = config.chroot_dir

    def execute(self) -> Dict:
        """
        Create the workspace

        Returns:
            Dict with status and the created paths
        """

        self.logger.debug("Setting up workspace...")

        try:
            self._create_directories()
            self._prepare_mounts()
        except OSError as e:
            self.logger.error(f"Workspace setup failed: {e}")
            return {
                'status': 'error',
                'error': str(e),
                'module': self.__class__.__name__
            }

        return {
            'status': 'success',
            'chroot': str(self.chroot_path),
            'temp_dir': str(self.context.temp_dir) if self.context.temp_dir else None,
        }

    def _create_directories(self):
        """Create chroot and scratch directories"""

        self.chroot_path.mkdir(parents=True, exist_ok=True)
        if self.context.temp_dir is not None:
            self.context.temp_dir.mkdir(parents=True, exist_ok=True)

    def _prepare_mounts(self):
        """Prepare mount points for chroot"""

        for mount in MOUNT_POINTS:
            (self.chroot_path / mount).mkdir(parents=True, exist_ok=True)

