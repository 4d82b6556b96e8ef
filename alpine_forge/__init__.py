#!/usr/bin/env python3
"""
alpine-forge
Bootstraps an Alpine Linux chroot on any Linux host, optionally for a
foreign architecture through QEMU user-mode emulation
"""

__version__ = "0.0.2"
