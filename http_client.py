"""
Thin ``requests`` wrapper shared by the catalog clients.

One ``HttpClient`` per provider. The credential lives in the session's
default headers, so ``set_credential`` takes effect for every later request
made through this client.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from errors import CatalogParseError, TransportError

USER_AGENT = "HytaleModManager/1.0"
API_TIMEOUT = 30.0
DOWNLOAD_TIMEOUT = 300.0

_log = logging.getLogger(__name__)


class HttpClient:
    def __init__(
        self,
        base_url: str,
        credential_header: str,
        *,
        timeout: float = API_TIMEOUT,
        download_timeout: float = DOWNLOAD_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credential_header = credential_header
        self.timeout = timeout
        self.download_timeout = download_timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": USER_AGENT})

    # ── Credential ────────────────────────────────────────────────────

    def set_credential(self, key: str | None) -> None:
        if key:
            self.session.headers[self.credential_header] = key
            _log.info("API key applied to all future requests on %s", self.base_url)
        else:
            self.session.headers.pop(self.credential_header, None)
            _log.info("API key cleared for %s", self.base_url)

    @property
    def has_credential(self) -> bool:
        return bool(self.session.headers.get(self.credential_header))

    # ── Requests ──────────────────────────────────────────────────────

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = self.url_for(path)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            _log.warning("Request to %s failed: %s", url, e)
            raise TransportError(f"Network request failed: {e}") from e

        if not response.ok:
            _log.warning("API error %s for %s", response.status_code, url)
            raise TransportError(
                f"API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise CatalogParseError(f"Failed to parse JSON from {url}: {e}") from e

    def fetch(self, url: str) -> bytes:
        """Download ``url`` fully into memory. No retry, no resumption."""
        _log.info("Downloading %s", url)
        try:
            response = self.session.get(url, timeout=self.download_timeout)
        except requests.RequestException as e:
            _log.error("Download of %s failed: %s", url, e)
            raise TransportError(f"Download failed: {e}") from e

        if not response.ok:
            _log.error("Download of %s failed with HTTP %s", url, response.status_code)
            raise TransportError(
                f"Download failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.content
