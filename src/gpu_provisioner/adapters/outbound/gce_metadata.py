"""MetadataPort implementation backed by the GCE metadata server."""

from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/instance/attributes"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}


class GceMetadata:
    """Read instance attributes; missing or empty attributes yield the default."""

    def __init__(
        self,
        base_url: str = METADATA_URL,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._cache: dict[str, str | None] = {}

    def _lookup(self, key: str) -> str | None:
        if key in self._cache:
            return self._cache[key]

        try:
            response = self._session.get(
                f"{self._base_url}/{key}",
                headers=METADATA_HEADERS,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Metadata lookup for {key} failed: {e}")
            return None

        value = response.text if response.status_code == 200 else None
        self._cache[key] = value
        return value

    def get(self, key: str, default: str = "") -> str:
        value = self._lookup(key)
        if value is None or not value.strip():
            return default
        return value.strip()
