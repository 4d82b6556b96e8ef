#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/update_check.py

"""
Non-blocking check for a newer release of this tool.
"""

import logging
from typing import Optional

import requests

RELEASES_API_URL = "https://api.github.com/repos/fquinto/alpinelinux/releases/latest"
PROJECT_URL = "https://github.com/fquinto/alpinelinux"

logger = logging.getLogger(__name__)


def latest_release(session: Optional[requests.Session] = None, timeout: float = 5) -> Optional[str]:
    """
    Return the latest released version (without a leading 'v'), or None when
    it cannot be determined.
    """
    http = session or requests
    try:
        response = http.get(RELEASES_API_URL, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.debug(f"Update check failed: {e}")
        return None
    tag = data.get('tag_name') if isinstance(data, dict) else None
    if not isinstance(tag, str):
        logger.debug(f"Update check got no release tag: {data!r:.80}")
        return None
    return (tag[1:] if tag.startswith('v') else tag) or None


def check_for_updates(current_version: str, session: Optional[requests.Session] = None) -> Optional[str]:
    """Warn if a different release is published; returns that version."""
    latest = latest_release(session)
    if latest and latest != current_version:
        logger.warning(f"A newer version (v{latest}) is available at {PROJECT_URL}")
        return latest
    return None
