#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/checksum.py

"""
Optional checksum verification for downloaded packages.

APKINDEX checksums describe package content for apk itself, not the raw
file, so they are never used here. Only digests supplied explicitly by the
user are checked, and only when verification is enabled. A mismatch is a
warning: download integrity is otherwise covered by HTTPS.
"""

import hashlib
import logging
import warnings
from pathlib import Path
from typing import Optional

from ..core.errors import IntegrityWarning

logger = logging.getLogger(__name__)

# Digest length in hex characters -> hashlib algorithm
ALGORITHMS = {
    40: 'sha1',
    64: 'sha256',
}


def algorithm_for(checksum: str) -> Optional[str]:
    """Return the hash algorithm matching the digest length, or None."""
    return ALGORITHMS.get(len(checksum))


def file_digest(path: Path, algorithm: str) -> str:
    digest = hashlib.new(algorithm)
    with Path(path).open('rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(path: Path, checksum: Optional[str], enabled: bool) -> Optional[bool]:
    """
    Verify a downloaded file against a caller-provided hex digest.

    Args:
        path: Downloaded file.
        checksum: Expected hex digest (SHA-1 or SHA-256), may be empty.
        enabled: Whether verification was explicitly requested.

    Returns:
        True on match, False on mismatch, None when verification was skipped.
    """
    path = Path(path)
    if not checksum or not enabled:
        logger.info(f"Downloaded {path.name} successfully (checksum verification skipped)")
        return None

    algorithm = algorithm_for(checksum)
    if algorithm is None:
        logger.warning(f"Unknown checksum format for {path.name} (length: {len(checksum)})")
        logger.warning("Skipping verification")
        return None

    logger.info(f"Verifying {algorithm} checksum for {path.name}")
    actual = file_digest(path, algorithm)
    if actual.lower() == checksum.lower():
        return True

    message = f"{algorithm.upper()} checksum verification failed for {path.name}"
    warnings.warn(message, IntegrityWarning, stacklevel=2)
    logger.warning(message)
    logger.warning(f"Expected: {checksum}")
    logger.warning("Continuing anyway - this may indicate a corrupted download")
    return False
