#!/usr/bin/env python3
"""
alpine-forge Utilities Module
Host-side collaborators used by the pipeline modules
"""

from .terminal_ui import TerminalUI

__all__ = ['TerminalUI']
