"""ArtifactFetcherPort implementation using requests."""

from __future__ import annotations

import logging
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 20


class HttpFetcher:
    """Download artifacts over HTTP(S), one attempt per call."""

    def __init__(self, timeout: float = 120.0, session: requests.Session | None = None) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()

    def probe(self, url: str) -> bool:
        try:
            response = self._session.head(url, allow_redirects=False, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning(f"HEAD {url} failed: {e}")
            return False
        return response.status_code == 200

    def fetch(self, url: str, destination: Path) -> bool:
        """Stream url into destination via a temporary file."""
        partial = destination.with_name(destination.name + ".part")
        try:
            with self._session.get(url, stream=True, timeout=self._timeout) as response:
                response.raise_for_status()
                with partial.open("wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
        except (requests.RequestException, OSError) as e:
            logger.warning(f"Download of {url} failed: {e}")
            partial.unlink(missing_ok=True)
            return False

        partial.replace(destination)
        logger.info(f"Downloaded {url} -> {destination}")
        return True
