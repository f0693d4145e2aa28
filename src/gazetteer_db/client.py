"""HTTP client for a running gazetteer-db server."""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

_TIMEOUT = 120


def _get_httpx():
    """Lazy import httpx, raising a clear error if not installed."""
    try:
        import httpx
        return httpx
    except ImportError:
        raise ImportError(
            "httpx is required for GazetteerClient. "
            "Install it with: pip install gazetteer-db[client]"
        )


class GazetteerClient:
    """Client for the gazetteer database server."""

    def __init__(self, server_url: str = "http://localhost:8223"):
        self.server_url = server_url.rstrip("/")
        self._httpx = _get_httpx()

    def health(self) -> dict:
        """Check server health."""
        resp = self._httpx.get(f"{self.server_url}/", timeout=_TIMEOUT)
        resp.raise_for_status()
        return resp.json()

    def resolve(self, **candidate: Any) -> Optional[dict]:
        """Resolve a place candidate (keyword fields of PlaceCandidate)."""
        resp = self._httpx.post(
            f"{self.server_url}/resolve",
            json=candidate,
            timeout=_TIMEOUT,
        )
        resp.raise_for_status()
        return resp.json()

    def predict_hubs(
        self,
        domain: str,
        name: str,
        code: Optional[str] = None,
        kind: str = "country",
        limit: Optional[int] = 20,
    ) -> list[dict]:
        """Ranked hub URL predictions for an entity on a domain."""
        resp = self._httpx.post(
            f"{self.server_url}/predict-hubs",
            json={"domain": domain, "name": name, "code": code, "kind": kind, "limit": limit},
            timeout=_TIMEOUT,
        )
        resp.raise_for_status()
        return resp.json()

    def hub_gaps(self, domain: str, kind: str = "country") -> dict:
        """Hub coverage of a place kind on a domain."""
        resp = self._httpx.post(
            f"{self.server_url}/hub-gaps",
            json={"domain": domain, "kind": kind},
            timeout=_TIMEOUT,
        )
        resp.raise_for_status()
        return resp.json()
