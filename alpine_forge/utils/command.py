#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/command.py

"""
Subprocess helper shared by the host-side collaborators.
"""

import logging
import subprocess
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(
    command: List[str],
    check: bool = True,
    capture: bool = True,
    input: Optional[bytes] = None,
) -> subprocess.CompletedProcess:
    """
    Run a host command and log its output.

    Args:
        command: Command and arguments.
        check: Raise subprocess.CalledProcessError on non-zero exit.
        capture: Capture stdout/stderr (as bytes) instead of inheriting them.
        input: Optional bytes fed to stdin.

    Returns:
        The completed process.
    """
    logger.debug(f"Executing: {' '.join(command)}")
    result = subprocess.run(
        command,
        check=check,
        input=input,
        stdout=subprocess.PIPE if capture else None,
        stderr=subprocess.PIPE if capture else None,
    )
    if capture and result.stderr:
        logger.debug(f"stderr: {result.stderr.decode(errors='replace').strip()}")
    return result
