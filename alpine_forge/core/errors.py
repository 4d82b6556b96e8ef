#!/usr/bin/env python3
# alpine-forge/alpine_forge/core/errors.py

"""
Error taxonomy for the Alpine chroot bootstrap.

Every fatal condition is an AlpineForgeError subclass. Pipeline modules raise
them, their execute() turns them into an error result and the builder stops
at the first failing module. IntegrityWarning is never raised; it is only
logged.
"""


class AlpineForgeError(Exception):
    """Base class for all fatal bootstrap errors"""


class ConfigError(AlpineForgeError):
    """Invalid configuration value or configuration file"""


class TransportError(AlpineForgeError):
    """Network or download failure"""


class NotFoundError(AlpineForgeError):
    """Required package record missing from the package index"""


class ExtractionError(AlpineForgeError):
    """Archive is missing an expected member or produced nothing"""


class PrivilegeError(AlpineForgeError):
    """Not running as root outside dry-run mode"""


class MountError(AlpineForgeError):
    """A mount or bind call failed"""


class EmulationError(AlpineForgeError):
    """QEMU or binfmt_misc could not be provisioned on the host"""


class PackageToolError(AlpineForgeError):
    """The static apk binary returned a non-zero exit status"""


class IntegrityWarning(UserWarning):
    """Checksum mismatch on a downloaded artifact"""
