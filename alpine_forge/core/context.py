#!/usr/bin/env python3
# alpine-forge/alpine_forge/core/context.py

"""
Per-run orchestration state shared by the pipeline modules.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class BuildContext:
    """
    Mutable state of one bootstrap run.

    Attributes:
        temp_dir: Scratch directory for downloads and extraction.
        host_cache_updated: Host package cache already refreshed this run.
        emulator_path: QEMU binary path when emulation was provisioned.
        apk_binary: Path of the extracted apk.static.
        records: Resolved package records by name.
        lockfile: BuildLockfile of the run, if any.
    """

    temp_dir: Optional[Path] = None
    host_cache_updated: bool = False
    emulator_path: Optional[str] = None
    apk_binary: Optional[Path] = None
    records: Dict[str, Any] = field(default_factory=dict)
    lockfile: Optional[Any] = None
