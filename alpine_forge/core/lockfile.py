#!/usr/bin/env python3
# alpine-forge/alpine_forge/core/lockfile.py

"""
Build Lockfile Manager
Records the package versions resolved from the mirror and the outcome of
each pipeline module, so a chroot can be traced back to what built it
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOCKFILE_NAME = ".alpine-forge.lock"

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BuildLockfile:
    """Resolved package versions and module results of a chroot"""

    def __init__(self, lockfile_path: Path):
        """
        Initialize lockfile manager

        Args:
            lockfile_path: Path where lockfile will be stored
        """

        self.lockfile_path = Path(lockfile_path)

        # Initialize or load lock data
        if self.lockfile_path.exists():
            self._load()
        else:
            self.lock_data = {
                'created': _now(),
                'packages': {},
                'checksums': {},
                'modules': {}
            }

    def _load(self):
        """Load existing lockfile; an unreadable one is replaced by a fresh record"""

        try:
            with open(self.lockfile_path, 'r') as f:
                data = json.load(f)
        except (ValueError, OSError) as e:
            logger.warning(f"Ignoring unreadable lockfile {self.lockfile_path}: {e}")
            data = None

        if not isinstance(data, dict):
            data = {'created': _now()}
        self.lock_data = data

        # Ensure all required sections exist
        for section in ['packages', 'checksums', 'modules']:
            if not isinstance(self.lock_data.get(section), dict):
                self.lock_data[section] = {}

    def record_package(self, record) -> None:
        """
        Record a package resolved from the APKINDEX

        Args:
            record: PackageRecord returned by the index resolver
        """

        self.lock_data['packages'][record.name] = {
            'version': record.version,
            'arch': record.arch,
            'license': record.license,
            'index_checksum': record.checksum,
            'timestamp': _now()
        }

    def record_file_checksum(self, file_name: str, algorithm: str, checksum: str):
        """
        Record the checksum of a downloaded file

        Args:
            file_name: Downloaded file name
            algorithm: Hash algorithm used (e.g., "sha256")
            checksum: Computed checksum value
        """

        self.lock_data['checksums'][file_name] = {
            'algorithm': algorithm,
            'value': checksum,
            'timestamp': _now()
        }

    def record_module_execution(self, module_name: str, result: Dict[str, Any]):
        """
        Record module execution results

        Args:
            module_name: Name of the executed module
            result: Module execution results
        """

        # Only scalar values are kept to avoid lockfile bloat
        entry = {
            key: value for key, value in result.items()
            if isinstance(value, (str, int, float, bool)) or value is None
        }
        entry['timestamp'] = _now()
        self.lock_data['modules'][module_name] = entry

    def save(self):
        """Write lockfile to disk, replacing the previous one atomically"""

        self.lock_data['last_updated'] = _now()
        self.lockfile_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=self.lockfile_path.name + '.', dir=self.lockfile_path.parent)
        try:
            with open(fd, 'w') as f:
                json.dump(self.lock_data, f, indent=2)
            os.replace(tmp_name, self.lockfile_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_package_version(self, package: str) -> Optional[str]:
        """
        Get locked package version

        Args:
            package: Package name to lookup

        Returns:
            Package version or None if not found
        """

        entry = self.lock_data['packages'].get(package)
        if isinstance(entry, dict):
            return entry.get('version')
        return None
