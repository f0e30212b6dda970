"""Manifest and spider config loading, plus the HTTP fetcher they share."""
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from config import settings
from crawler.spider_config import Manifest, SpiderConfig

logger = logging.getLogger(__name__)


class HtmlFetcher:
    """
    GET helper returning payloads, or None on any failure.

    Network errors and non-2xx statuses are logged and reported as absence;
    nothing is retried.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=settings.http_timeout,
                headers={
                    "User-Agent": settings.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.9",
                },
            )
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str) -> Optional[httpx.Response]:
        if self._client is None:
            await self.__aenter__()
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return None

    async def fetch_text(self, url: str) -> Optional[str]:
        response = await self._get(url)
        return response.text if response is not None else None

    async def fetch_json(self, url: str) -> Optional[Any]:
        response = await self._get(url)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Response from {url} is not JSON: {e}")
            return None

    async def fetch_bytes(self, url: str) -> Optional[bytes]:
        response = await self._get(url)
        return response.content if response is not None else None


async def load_manifest(fetcher, url: str) -> Optional[Manifest]:
    """
    Fetch and validate a manifest.

    Args:
        fetcher: Object exposing ``fetch_json``
        url: Manifest (connection) URL

    Returns:
        The manifest, or None if it could not be fetched or is malformed
    """
    payload = await fetcher.fetch_json(url)
    if payload is None:
        logger.error(f"Failed to load manifest from {url}")
        return None

    try:
        manifest = Manifest.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Manifest at {url} is invalid: {e}")
        return None

    logger.info(f"Loaded manifest with {len(manifest.crawlers)} crawlers from {url}")
    return manifest


async def load_spider_config(fetcher, url: str) -> Optional[SpiderConfig]:
    """
    Fetch and validate a spider document.

    Documents may be wrapped as ``{"spider": {...}, "token": "..."}``; the
    wrapper is removed and the token is not checked.
    """
    payload = await fetcher.fetch_json(url)
    if payload is None:
        logger.error(f"Failed to load spider config from {url}")
        return None

    if isinstance(payload, dict) and "spider" in payload:
        payload = payload["spider"]

    try:
        return SpiderConfig.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Spider config at {url} is invalid: {e}")
        return None
