#!/usr/bin/env python3
"""
alpine-forge Core Module
Contains the essential framework components
"""

from .builder import AlpineForgeBuilder
from .config import BootstrapConfig, load_config
from .lockfile import BuildLockfile

__all__ = ['AlpineForgeBuilder', 'BootstrapConfig', 'BuildLockfile', 'load_config']
