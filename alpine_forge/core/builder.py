#!/usr/bin/env python3
# alpine-forge/alpine_forge/core/builder.py

"""
Core Builder Framework
Orchestrates the Alpine chroot bootstrap
"""

import importlib
import logging
import os
import re
import tempfile
import traceback
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

import yaml

from .. import __version__
from ..utils.mount_table import PROC_MOUNTS, mounts_under, read_mount_points, unmount_order
from ..utils.terminal_ui import TerminalUI
from ..utils.update_check import check_for_updates
from .config import BootstrapConfig
from .context import BuildContext
from .errors import PrivilegeError
from .lockfile import LOCKFILE_NAME, BuildLockfile

LOG_FILE_NAME = "alpine-forge.log"


def module_import_path(module_name: str) -> str:
    """'AlpineBootstrap' -> 'alpine_forge.modules.alpine_bootstrap'"""
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", module_name).lower()
    return f"alpine_forge.modules.{snake}"


class AlpineForgeBuilder:
    """
    Main orchestration engine for the Alpine chroot bootstrap.
    Runs the modules listed in the configuration one after another and
    stops at the first failure.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        ui: Optional[TerminalUI] = None,
        geteuid: Callable[[], int] = os.geteuid,
        environ: Optional[Mapping[str, str]] = None,
        mounts_file: Path = PROC_MOUNTS,
    ):
        """Initialize builder with configuration"""
        self.config = config
        self.ui = ui or TerminalUI()
        self.geteuid = geteuid
        self.environ = os.environ if environ is None else environ
        self.mounts_file = mounts_file
        self.context = BuildContext()
        self.logger = logging.getLogger('AlpineForge')
        self.log_path: Optional[Path] = None

    def _setup_logging(self, log_dir: Optional[Path] = None):
        """Configure terminal logging and, outside dry-run, a log file"""

        level = logging.DEBUG if self.config.verbose else logging.INFO
        handlers: List[logging.Handler] = [self.ui.make_handler(level)]

        if log_dir is not None:
            self.log_path = log_dir / LOG_FILE_NAME
            file_handler = logging.FileHandler(self.log_path)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            )
            handlers.append(file_handler)

        root = logging.getLogger()
        self._previous_level = root.level
        root.setLevel(logging.DEBUG)
        for handler in handlers:
            root.addHandler(handler)
        self._handlers = handlers

    def _teardown_logging(self):
        root = logging.getLogger()
        if hasattr(self, '_previous_level'):
            root.setLevel(self._previous_level)
            del self._previous_level
        for handler in getattr(self, '_handlers', []):
            root.removeHandler(handler)
            handler.close()
        self._handlers = []

    def run(self) -> Dict:
        """
        Run the bootstrap: dry-run report, or privilege check, update check
        and the full pipeline.

        Returns:
            Dict with build status and results

        Raises:
            PrivilegeError: If not running as root outside dry-run mode.
        """

        if self.config.dry_run:
            self._setup_logging()
            try:
                return self.dry_run()
            finally:
                self._teardown_logging()

        if self.geteuid() != 0:
            raise PrivilegeError("This script must be run as root! Use -D for dry-run testing.")

        self.context.temp_dir = self.config.temp_dir or Path(tempfile.mkdtemp(prefix='alpine-forge-'))
        self.context.temp_dir.mkdir(parents=True, exist_ok=True)
        self._setup_logging(self.context.temp_dir)

        try:
            if not self.config.skip_version_check:
                check_for_updates(__version__)

            lockfile = BuildLockfile(self.config.chroot_dir / LOCKFILE_NAME)
            self.context.lockfile = lockfile
            return self.execute_pipeline(lockfile=lockfile)
        finally:
            self._teardown_logging()

    def dry_run(self) -> Dict:
        """Validate and echo the configuration without touching the system"""

        # Local import: modules depend on core
        from ..modules.lifecycle_scripts import filter_environment

        kept = filter_environment(self.environ, self.config.keep_vars)
        settings = {
            'ARCH': self.config.arch,
            'ALPINE_BRANCH': self.config.branch,
            'CHROOT_DIR': self.config.chroot_dir,
            'ALPINE_PACKAGES': ' '.join(self.config.packages),
            'ALPINE_MIRROR': self.config.mirror,
            'TEMP_DIR': self.config.temp_dir or '(created at run time)',
            'BIND_DIR': self.config.bind_dir,
            'EXTRA_REPOS': ' '.join(self.config.extra_repos),
            'CHROOT_KEEP_VARS': ' '.join(self.config.keep_vars),
        }
        self.ui.display_settings('DRY RUN MODE - Configuration validation only', settings)
        self.ui.display_banner(yaml.safe_dump(self.config.to_dict(), default_flow_style=False, sort_keys=False))
        self.ui.display_settings('Environment kept by enter-chroot:', dict(sorted(kept.items())))
        plan = self.unmount_plan()
        if plan:
            self.ui.display_settings(
                'Already mounted below the chroot (destroy unmounts them in this order):',
                {str(step): path for step, path in enumerate(plan, 1)},
            )
        self.ui.display_banner(
            'Configuration looks valid. Run without -D as root to perform actual installation.'
        )
        return {
            'status': 'success',
            'dry_run': True,
            'config': self.config.to_dict(),
            'kept_environment': kept,
            'unmount_plan': plan,
        }

    def unmount_plan(self) -> List[str]:
        """Mounts currently below the chroot, in the order destroy releases them"""

        try:
            points = read_mount_points(self.mounts_file)
        except OSError as e:
            self.logger.debug(f"Cannot read {self.mounts_file}: {e}")
            return []
        return unmount_order(mounts_under(self.config.chroot_dir, points))

    def execute_pipeline(
        self,
        modules: Optional[List[str]] = None,
        lockfile: Optional[BuildLockfile] = None
    ) -> Dict:
        """
        Execute the complete build pipeline or specific modules

        Args:
            modules: Optional list of modules to run (default: all configured)
            lockfile: Optional lockfile instance for version tracking

        Returns:
            Dict with build status and results
        """

        self.logger.debug("Starting Alpine bootstrap pipeline")

        modules = list(modules or self.config.modules)
        self.logger.debug(f"Executing modules: {', '.join(modules)}")

        results = {}

        for module_name in modules:
            self.logger.debug(f"Executing module: {module_name}")

            try:
                result = self._execute_module(module_name, lockfile)
            except Exception as e:
                error_msg = f"Exception in module {module_name}: {e}"
                self.logger.error(error_msg)
                self.logger.debug(traceback.format_exc())
                result = {'status': 'error', 'error': error_msg, 'module': module_name}

            results[module_name] = result

            if result.get('status') != 'success':
                error_details = result.get('error')
                self.logger.error(f"Module {module_name} failed: {error_details}")
                return {
                    'status': 'error',
                    'error': error_details,
                    'module': module_name,
                    'results': results,
                    'log_path': str(self.log_path) if self.log_path else None,
                }

            # Save progress after each module
            if lockfile is not None:
                lockfile.save()

        return {
            'status': 'success',
            'results': results,
            'chroot_dir': str(self.config.chroot_dir),
            'log_path': str(self.log_path) if self.log_path else None,
            'lockfile_path': str(lockfile.lockfile_path) if lockfile else None,
        }

    def _execute_module(self, module_name: str, lockfile: Optional[BuildLockfile] = None) -> Dict:
        """Import, instantiate and execute one pipeline module"""

        try:
            module = importlib.import_module(module_import_path(module_name))
        except ImportError as e:
            return {
                'status': 'error',
                'error': f"Failed to import module {module_name}: {e}"
            }

        if not hasattr(module, module_name):
            return {
                'status': 'error',
                'error': f"Class {module_name} not found in module {module_name}"
            }

        module_instance = getattr(module, module_name)(self.config, self.context)
        result = module_instance.execute()

        # Record to lockfile if provided
        if lockfile and result.get('status') == 'success':
            lockfile.record_module_execution(module_name, result)

        return result

