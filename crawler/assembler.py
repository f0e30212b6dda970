"""
Field-set assemblers for search results and manga profiles.

Each requested field with a configured Selector Spec costs one engine call.
Fields that were not requested, have no spec, or resolved to nothing are left
off the record, except list fields which are always present (possibly empty).
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from crawler.extractor import extract, parse_html, select_nodes
from crawler.items import MangaItem
from crawler.pipelines import run_pipelines
from crawler.resolver import collect_chapters, profile_url
from crawler.spider_config import SpiderConfig

logger = logging.getLogger(__name__)

MANGA_FIELDS = (
    "manga_id",
    "manga_name",
    "manga_description",
    "genres",
    "manga_image",
    "manga_chapters",
    "page_num",
    "page_image",
)

# Record field -> (spec attribute on the config, extraction defaults)
SCALAR_FIELDS = {
    "manga_id": ("manga_id", {"attribute": "href"}),
    "manga_name": ("name", {"text": True}),
    "manga_description": ("description", {"text": True}),
    "manga_image": ("image", {"attribute": "src"}),
}

WARNING_INVALID_CONFIG = "Invalid spider configuration"
WARNING_FETCH_FAILED = "Failed to fetch HTML"
WARNING_NO_CONTENT = "No matching content found"


def parse_fields(raw: Optional[Iterable[str]]) -> List[str]:
    """Keep the recognised field names, in request order, without repeats."""
    fields = []
    for name in raw or []:
        name = name.strip()
        if not name:
            continue
        if name not in MANGA_FIELDS:
            logger.info(f"Ignoring unknown field: {name}")
            continue
        if name not in fields:
            fields.append(name)
    return fields


def assemble_record(node: Any, lookup, fields: List[str], base_url: str) -> MangaItem:
    """
    Build one record from ``node``.

    Args:
        node: Search-result element or whole profile document
        lookup: Callable returning the SelectorSpec for a config attribute name
        fields: Requested record fields
        base_url: URL of the page ``node`` came from

    Returns:
        MangaItem holding only the resolved fields
    """
    item = MangaItem()

    for field in fields:
        if field in SCALAR_FIELDS:
            attr, extraction = SCALAR_FIELDS[field]
            spec = lookup(attr)
            if spec is None:
                continue
            value = extract(node, spec.prepared(extraction, multiple=False))
            if value is not None:
                item[field] = value

        elif field == "genres":
            spec = lookup("genres")
            if spec is None:
                continue
            values = extract(node, spec.prepared({"text": True}, multiple=True))
            item["genres"] = [v for v in values if isinstance(v, str)]

        elif field == "manga_chapters":
            spec = lookup("chapters")
            if spec is None:
                continue
            chapters = [dict(c) for c in collect_chapters(node, spec, base_url)]
            item["manga_chapters"] = chapters
            item["max_chapters"] = len(chapters)

    return run_pipelines(item, base_url)


async def search_spider(fetcher, spider: SpiderConfig, query: str,
                        fields: List[str]) -> Tuple[List[Dict], Optional[str]]:
    """
    Run one spider's search.

    Returns:
        (records, warning); warning is None when at least one element matched
    """
    cfg = spider.item_config
    if cfg is None or not cfg.selector:
        return [], WARNING_INVALID_CONFIG

    fetch_url = spider.search_url(query)
    logger.info(f"[{spider.id}] Fetching: {fetch_url}")

    html = await fetcher.fetch_text(fetch_url)
    if html is None:
        return [], WARNING_FETCH_FAILED

    document = parse_html(html)
    elements = select_nodes(document, cfg.selector)
    logger.info(f"[{spider.id}] Found {len(elements)} elements")

    results = [
        dict(assemble_record(element, cfg.search_spec, fields, fetch_url))
        for element in elements
    ]
    return results, (None if results else WARNING_NO_CONTENT)


async def manga_details(fetcher, spider: SpiderConfig, manga_id: str,
                        fields: List[str]) -> List[Dict]:
    """
    Read one manga profile page.

    Returns:
        A single-record list, or an empty list when the spider has no profile
        block or the page could not be fetched
    """
    cfg = spider.item_config
    profile_by_id = cfg.profile_by_id if cfg else None
    if profile_by_id is None:
        logger.warning(f"Spider '{spider.id}' has no profileById block")
        return []

    url = profile_url(profile_by_id, manga_id)
    logger.info(f"[{spider.id}] Fetching profile: {url}")

    html = await fetcher.fetch_text(url)
    if html is None:
        return []

    target = profile_by_id.profile_target
    record_fields = [f for f in fields if f != "manga_id"]
    item = assemble_record(
        parse_html(html),
        target.spec,
        record_fields,
        url,
    )
    item["manga_id"] = manga_id
    return [dict(item)]
