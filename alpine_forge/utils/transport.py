#!/usr/bin/env python3
# alpine-forge/alpine_forge/utils/transport.py

"""
HTTP transport.
Downloads files from the Alpine mirror either to disk or into a stream.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Union

import requests
from tqdm import tqdm

from ..core.errors import TransportError

DEFAULT_TIMEOUT = 10
CHUNK_SIZE = 64 * 1024


class Transport:
    """
    Thin wrapper around a requests session.

    Every request uses the configured timeout. HTTP errors and connection
    problems are raised as TransportError; nothing is retried.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger(self.__class__.__name__)

    def download(self, url: str, output: Union[str, Path, BinaryIO]) -> int:
        """
        Download url into output.

        Args:
            url: Absolute URL to fetch.
            output: Destination file path (overwritten) or a writable
                    binary stream.

        Returns:
            Number of bytes written.

        Raises:
            TransportError: If the request fails or returns an HTTP error.
        """
        self.logger.info(f"Downloading {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total = int(response.headers.get('content-length', 0)) or None
                if isinstance(output, (str, Path)):
                    path = Path(output)
                    path.parent.mkdir(parents=True, exist_ok=True)
                    with path.open('wb') as f:
                        return self._copy(response, f, total, path.name)
                return self._copy(response, output, total, url.rsplit('/', 1)[-1])
        except requests.RequestException as e:
            raise TransportError(f"Failed to download {url}: {e}") from e

    def _copy(self, response: requests.Response, stream: BinaryIO, total: Optional[int], label: str) -> int:
        written = 0
        with tqdm(total=total, desc=label, unit='B', unit_scale=True, leave=False, disable=None) as bar:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                stream.write(chunk)
                written += len(chunk)
                bar.update(len(chunk))
        return written
