#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/arch.py

"""
Architecture helpers.
Maps user facing architecture aliases to the names QEMU uses.
"""

import platform
import re

_X86_ALIASES = re.compile(r"^(x86|i[3-6]86)$")
_ARM_ALIASES = re.compile(r"^(armhf|armv[4-9])$")


def normalize_architecture(arch: str) -> str:
    """
    Normalize an architecture name for QEMU compatibility.

    Args:
        arch: Architecture name as given by the user or `uname -m`.

    Returns:
        'i386' for x86 aliases, 'arm' for 32-bit ARM aliases,
        otherwise the input unchanged.
    """
    if _X86_ALIASES.match(arch):
        return "i386"
    if _ARM_ALIASES.match(arch):
        return "arm"
    return arch


def host_architecture() -> str:
    """Return the machine architecture of the running host."""
    return platform.machine()


def needs_emulation(target_arch: str, host_arch: str) -> bool:
    """True when binaries built for target_arch cannot run natively on host_arch."""
    return normalize_architecture(target_arch) != normalize_architecture(host_arch)


def qemu_binary_name(arch: str) -> str:
    return f"qemu-{normalize_architecture(arch)}-static"
