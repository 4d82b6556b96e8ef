#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/apkindex.py

"""
APKINDEX resolver.

Alpine mirrors publish one APKINDEX.tar.gz per branch, repository and
architecture. The archive holds a single text member, `APKINDEX`, made of
blocks separated by blank lines. Each block describes one package as
`K:value` lines, for example:

    C:Q1u1Bl2y0fZ0Ckf+3pHh8pYzDhGxU=
    P:apk-tools-static
    V:2.14.4-r0
    A:x86_64
    L:GPL-2.0-only
    U:https://gitlab.alpinelinux.org/alpine/apk-tools

Only the keys needed to locate a package are kept.
"""

import logging
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

from .transport import Transport

logger = logging.getLogger(__name__)

INDEX_MEMBER = "APKINDEX"

# APKINDEX key -> PackageRecord field
FIELDS = {
    'P': 'name',
    'V': 'version',
    'L': 'license',
    'U': 'url',
    'c': 'checksum',
    'A': 'arch',
}


@dataclass(frozen=True)
class PackageRecord:
    """One package entry of an APKINDEX file"""

    name: str
    version: str = ''
    url: str = ''
    checksum: str = ''
    arch: str = ''
    license: str = ''

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}.apk"


def index_url(mirror: str, branch: str, arch: str) -> str:
    return f"{mirror.rstrip('/')}/{branch}/main/{arch}/APKINDEX.tar.gz"


def package_url(mirror: str, branch: str, arch: str, record: PackageRecord) -> str:
    return f"{mirror.rstrip('/')}/{branch}/main/{arch}/{record.filename}"


def iter_blocks(lines: Iterable[str]) -> Iterator[Dict[str, str]]:
    """
    Yield the recognized fields of each blank-line separated block.

    A trailing block without a final blank line is yielded as well.
    """
    block: Dict[str, str] = {}
    for line in lines:
        line = line.rstrip('\r\n')
        if not line:
            if block:
                yield block
            block = {}
            continue
        key, sep, value = line.partition(':')
        if sep and key in FIELDS:
            block[FIELDS[key]] = value
    if block:
        yield block


def parse_apkindex(text: str, package_name: str) -> Optional[PackageRecord]:
    """
    Find package_name in the APKINDEX text.

    The first block whose name matches exactly wins; an index lists one
    entry per package and architecture.

    Returns:
        The matching PackageRecord, or None if no block matches.
    """
    for block in iter_blocks(text.splitlines()):
        if block.get('name') == package_name:
            return PackageRecord(**block)
    return None


def read_index_member(archive: Path) -> str:
    """Return the text of the APKINDEX member, or '' if it is missing or unreadable."""
    try:
        with tarfile.open(archive, 'r:gz') as tar:
            try:
                member = tar.getmember(INDEX_MEMBER)
            except KeyError:
                logger.warning(f"{archive.name} has no {INDEX_MEMBER} member")
                return ''
            f = tar.extractfile(member)
            if f is None:
                return ''
            with f:
                return f.read().decode('utf-8', errors='replace')
    except (tarfile.TarError, EOFError, OSError) as e:
        logger.warning(f"Cannot read package index {archive.name}: {e}")
        return ''


def resolve_package(
    mirror: str,
    branch: str,
    arch: str,
    package_name: str,
    transport: Transport,
    scratch_dir: Optional[Path] = None,
) -> Optional[PackageRecord]:
    """
    Look up the current record of package_name on the mirror.

    Args:
        mirror: Base mirror URL, e.g. https://dl-cdn.alpinelinux.org/alpine
        branch: Alpine branch, e.g. latest-stable, v3.20, edge
        arch: Alpine architecture, e.g. x86_64, aarch64
        package_name: Exact, case sensitive package name
        transport: Transport used to download the index
        scratch_dir: Where to store the temporary index file

    Returns:
        The PackageRecord, or None when the index has no such package.

    Raises:
        TransportError: If the index cannot be downloaded.
    """
    url = index_url(mirror, branch, arch)
    fd, name = tempfile.mkstemp(prefix='APKINDEX-', suffix='.tar.gz', dir=scratch_dir)
    scratch = Path(name)
    try:
        with open(fd, 'wb') as f:
            transport.download(url, f)
        text = read_index_member(scratch)
    finally:
        scratch.unlink(missing_ok=True)

    record = parse_apkindex(text, package_name)
    if record is None:
        logger.debug(f"{package_name} not found in {url}")
    else:
        logger.debug(f"Resolved {package_name} {record.version} from {url}")
    return record
