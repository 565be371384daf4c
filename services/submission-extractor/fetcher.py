"""Authenticated downloads of submission attachments from the LMS."""

import logging
import re

import httpx

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
_BEARER_RE = re.compile(r"^(?:bearer(?:\s+|$))+", re.IGNORECASE)


class FetchError(Exception):
    """Attachment could not be downloaded (network, auth or HTTP status)."""


def normalize_bearer(token: str | None) -> str | None:
    """Return the token with the `Bearer ` prefix exactly once, or None if empty."""
    token = _BEARER_RE.sub("", (token or "").strip()).strip()
    if not token:
        return None
    return BEARER_PREFIX + token


class AttachmentFetcher:
    """Fetches attachment bytes with the grader's LMS token."""

    def __init__(self, client: httpx.AsyncClient, token: str | None = None):
        self._client = client
        self._authorization = normalize_bearer(token)

    async def fetch_bytes(self, url: str) -> bytes:
        headers = {"Authorization": self._authorization} if self._authorization else {}
        try:
            resp = await self._client.get(url, headers=headers, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning("Attachment download failed: %s", e)
            raise FetchError(f"Download failed: {e}") from e

        if resp.status_code != 200:
            logger.warning("Attachment download returned HTTP %d", resp.status_code)
            raise FetchError(f"HTTP {resp.status_code}")

        return resp.content
