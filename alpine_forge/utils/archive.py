#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/archive.py

"""
Archive helpers for .apk packages.

An .apk file is a concatenation of gzip compressed tar segments (signature,
control, data). tarfile reads it as one stream once empty blocks between
segments are ignored.
"""

import logging
import shutil
import tarfile
from pathlib import Path
from typing import BinaryIO, List

from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)


def _open(archive: Path) -> tarfile.TarFile:
    try:
        return tarfile.open(archive, 'r:gz', ignore_zeros=True)
    except (tarfile.TarError, OSError) as e:
        raise ExtractionError(f"Cannot open archive {archive}: {e}") from e


def extract_member(archive: Path, member: str, destination: Path) -> Path:
    """
    Extract a single regular file from archive and store it at destination.

    Raises:
        ExtractionError: If the member is missing or not a regular file.
    """
    with _open(Path(archive)) as tar:
        try:
            info = tar.getmember(member)
        except KeyError:
            raise ExtractionError(f"{member} not found in {Path(archive).name}") from None
        source = tar.extractfile(info)
        if source is None:
            raise ExtractionError(f"{member} in {Path(archive).name} is not a regular file")
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with source, destination.open('wb') as out:
            shutil.copyfileobj(source, out)
    logger.debug(f"Extracted {member} to {destination}")
    return destination


def extract_all(archive: Path, destination: Path) -> None:
    """Extract every member of archive below destination."""
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)
    with _open(Path(archive)) as tar:
        try:
            tar.extractall(destination, filter='data')
        except (tarfile.TarError, OSError) as e:
            raise ExtractionError(f"Failed to extract {Path(archive).name}: {e}") from e


def extract_prefix(stream: BinaryIO, prefix: str, destination: Path) -> List[str]:
    """
    Extract only the members of a gzip tar stream located under prefix.

    Args:
        stream: Readable binary stream of a .tar.gz / .apk.
        prefix: Top-level directory to keep, e.g. 'etc'.
        destination: Directory the members are extracted into.

    Returns:
        Names of the extracted members.
    """
    prefix = prefix.strip('/')
    extracted: List[str] = []
    try:
        with tarfile.open(fileobj=stream, mode='r:gz', ignore_zeros=True) as tar:
            members = [
                m for m in tar.getmembers()
                if m.name == prefix or m.name.startswith(prefix + '/')
            ]
            tar.extractall(destination, members=members, filter='tar')
            extracted = [m.name for m in members]
    except (tarfile.TarError, OSError) as e:
        raise ExtractionError(f"Failed to extract {prefix}/ from stream: {e}") from e
    if not extracted:
        raise ExtractionError(f"No {prefix}/ entries found in archive stream")
    return extracted
