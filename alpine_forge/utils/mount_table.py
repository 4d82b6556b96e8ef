#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/mount_table.py

"""
Reading the live mount table.

Mounts created under the chroot are not tracked in memory; /proc/mounts is
the source of truth. Unmounting in reverse lexicographic order guarantees a
mount point is released before any of its parents.
"""

import re
from pathlib import Path
from typing import Iterable, List, Union

PROC_MOUNTS = Path("/proc/mounts")

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    # /proc/mounts encodes space, tab, newline and backslash as \ooo
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mount_points(text: str) -> List[str]:
    """Return the mount point column of a /proc/mounts formatted text."""
    points = []
    for line in text.splitlines():
        fields = line.split()
        if len(fields) >= 2:
            points.append(_unescape(fields[1]))
    return points


def read_mount_points(mounts_file: Union[str, Path] = PROC_MOUNTS) -> List[str]:
    return parse_mount_points(Path(mounts_file).read_text())


def mounts_under(root: Union[str, Path], mount_points: Iterable[str]) -> List[str]:
    """Mount points strictly below root (root itself excluded)."""
    prefix = str(root).rstrip('/') + '/'
    return [p for p in mount_points if p.startswith(prefix)]


def unmount_order(mount_points: Iterable[str]) -> List[str]:
    """
    Order mount points for unmounting: reverse lexicographic, so that
    /a/b/c comes before /a/b, which comes before /a.
    """
    return sorted(mount_points, reverse=True)


def is_mount_point(path: Union[str, Path], mount_points: Iterable[str]) -> bool:
    return str(path).rstrip('/') in {p.rstrip('/') for p in mount_points}
