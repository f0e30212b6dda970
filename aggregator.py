"""Manifest-driven aggregation over all registered spiders."""
import base64
import json
import logging
import mimetypes
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from config import settings
from crawler.assembler import manga_details, search_spider
from crawler.loader import load_manifest, load_spider_config
from crawler.resolver import ChapterResolution, resolve_chapter
from crawler.script_arrays import ScriptArrayParser
from crawler.spider_config import Manifest, SpiderConfig

logger = logging.getLogger(__name__)

DONE_EVENT = "event: done\ndata: done\n\n"


class AggregatorError(Exception):
    """A condition that aborts the whole request."""
    status_code = 500


class ConnectionNotRegistered(AggregatorError):
    status_code = 400

    def __init__(self):
        super().__init__("No registered connection URL found")


class ManifestUnavailable(AggregatorError):
    def __init__(self):
        super().__init__("Failed to load manifest")


class SpiderNotFound(AggregatorError):
    status_code = 404

    def __init__(self, spider_id: str):
        super().__init__(f"Spider '{spider_id}' not found in manifest")


class SpiderConfigUnavailable(AggregatorError):
    def __init__(self, spider_id: str):
        super().__init__(f"Failed to load config for spider '{spider_id}'")


def sse_event(payload) -> str:
    """Frame one JSON payload as a server-sent event."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def image_data_uri(url: str, content: bytes) -> str:
    mime, _ = mimetypes.guess_type(url.split("?", 1)[0])
    if not mime or not mime.startswith("image/"):
        mime = "image/webp"
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


class MangaAggregator:
    """
    Resolve manifests and spiders for the active connection.

    Args:
        fetcher: HTTP capability (``fetch_text``/``fetch_json``/``fetch_bytes``)
        connection_lookup: Returns the active manifest URL, or None
        parser: Optional script-array parser override for chapter pages
    """

    def __init__(self, fetcher, connection_lookup: Callable[[], Optional[str]],
                 parser: Optional[ScriptArrayParser] = None):
        self.fetcher = fetcher
        self.connection_lookup = connection_lookup
        self.parser = parser

    async def manifest(self, connection_url: Optional[str] = None) -> Manifest:
        url = connection_url or self.connection_lookup()
        if not url:
            raise ConnectionNotRegistered()

        manifest = await load_manifest(self.fetcher, url)
        if manifest is None:
            raise ManifestUnavailable()
        return manifest

    async def spider(self, spider_id: str, manifest: Optional[Manifest] = None) -> SpiderConfig:
        manifest = manifest or await self.manifest()

        crawler = manifest.find(spider_id)
        if crawler is None:
            raise SpiderNotFound(spider_id)

        spider = await load_spider_config(self.fetcher, str(crawler.link))
        if spider is None:
            raise SpiderConfigUnavailable(spider_id)
        return spider

    async def stream_search(
        self,
        manifest: Manifest,
        query: str,
        fields: List[str],
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """
        Yield one SSE batch per crawler, in manifest order, then ``done``.

        A crawler that fails contributes a batch with a warning and no results.
        """
        for crawler in manifest.crawlers:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Search client disconnected, stopping")
                return

            logger.info(f"[SearchAPI] Processing spider: {crawler.id}")
            batch: Dict = {
                "spiderId": crawler.id,
                "displayName": crawler.name,
                "results": [],
            }

            spider = await load_spider_config(self.fetcher, str(crawler.link))
            if spider is None:
                batch["warning"] = "Could not load spider config"
                yield sse_event(batch)
                continue

            try:
                results, warning = await search_spider(self.fetcher, spider, query, fields)
            except Exception:
                logger.exception(f"Spider '{crawler.id}' failed during search")
                results, warning = [], "Spider failed"

            batch["results"] = results
            if warning:
                batch["warning"] = warning
            yield sse_event(batch)

        yield DONE_EVENT

    async def manga(self, spider_id: str, manga_id: str, fields: List[str]) -> List[Dict]:
        spider = await self.spider(spider_id)
        return await manga_details(self.fetcher, spider, manga_id, fields)

    async def chapter(self, spider_id: str, manga_id: str, chapter: Optional[int] = None,
                      chapter_url: Optional[str] = None) -> ChapterResolution:
        spider = await self.spider(spider_id)
        return await resolve_chapter(
            self.fetcher, spider, manga_id,
            chapter=chapter, chapter_url=chapter_url, parser=self.parser,
        )

    async def stream_chapter(
        self,
        resolution: ChapterResolution,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """
        Yield each page image as a data URI event, then ``done``.

        Pages that fail to download, are empty, or exceed
        ``settings.max_image_bytes`` are skipped.
        """
        for page in resolution.pages:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Reader client disconnected, stopping")
                return

            content = await self.fetcher.fetch_bytes(page["url"])
            if not content or len(content) > settings.max_image_bytes:
                logger.warning(f"Skipping page {page['page']}: {page['url']}")
                continue

            yield sse_event({
                "page": page["page"],
                "image": image_data_uri(page["url"], content),
                "maxChapter": resolution.max_chapter_count,
                "mangaTitle": resolution.manga_title,
                "chapterTitle": resolution.chapter_title,
            })

        yield DONE_EVENT
