"""
Chapter and page resolution.

A chapter is resolved in two sequential fetches: the manga profile page gives
the ordered chapter list, then the chosen chapter page gives the page images.
Any failed fetch ends resolution with whatever metadata is known so far.
"""
import logging
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from crawler.extractor import arrange, extract, extract_node, parse_html, select_nodes, text_content
from crawler.items import ChapterItem, PageItem
from crawler.pipelines import absolute_url
from crawler.script_arrays import RegexArrayParser, ScriptArrayParser, extract_array_urls
from crawler.spider_config import IdReplacement, PageImageSpec, ProfileById, SelectorSpec, SpiderConfig

logger = logging.getLogger(__name__)


class ChapterResolution(BaseModel):
    """Pages of one chapter plus the metadata the reader displays."""
    pages: List[dict] = Field(default_factory=list)
    chapter_title: str = ""
    manga_title: str = ""
    max_chapter_count: Optional[int] = None


def _js_replacement(template: str) -> str:
    """Translate ``$1`` / ``$&`` group references into ``re.sub`` syntax."""
    template = template.replace("\\", "\\\\")
    template = template.replace("$&", r"\g<0>")
    return re.sub(r"\$(\d+)", r"\\g<\1>", template)


def normalize_manga_id(manga_id: str, replacement: Optional[IdReplacement]) -> str:
    """Apply the spider's id substitution; a broken pattern leaves the id as is."""
    if replacement is None:
        return manga_id
    try:
        return re.sub(replacement.pattern, _js_replacement(replacement.with_), manga_id, count=1)
    except re.error as e:
        logger.warning(f"Invalid id replace pattern {replacement.pattern!r}: {e}")
        return manga_id


def profile_url(profile_by_id: ProfileById, manga_id: str) -> str:
    normalized = normalize_manga_id(manga_id, profile_by_id.replace)
    return profile_by_id.url_pattern.replace("{manga_id}", normalized)


def collect_chapters(document: Any, spec: Optional[SelectorSpec], base_url: str) -> List[ChapterItem]:
    """
    Ordered chapter list of a profile page.

    Links come from ``spec.attribute`` (``href`` by default) or from JSON when
    the spec parses script JSON. The arranger runs once over the whole list and
    numbering follows the arranged order.
    """
    if spec is None or not spec.selector:
        return []

    # The link's text is the title, so text mode never picks the URL
    link_spec = spec.model_copy(update={
        "selector": None,
        "text": False,
        "multiple": False,
        "attribute": spec.attribute or "href",
    })

    entries = []
    for node in select_nodes(document, spec.selector):
        value = extract_node(node, link_spec)
        if isinstance(value, list):
            entries.extend(("", v) for v in value if isinstance(v, str) and v)
        elif isinstance(value, str) and value:
            title = (text_content(node) or "").strip()
            entries.append((title, value))

    chapters = []
    for number, (title, url) in enumerate(arrange(entries, spec.arranger), start=1):
        chapters.append(ChapterItem(
            number=number,
            title=title,
            url=absolute_url(url.strip(), base_url),
        ))
    return chapters


def resolve_pages(document: Any, page_spec: Optional[PageImageSpec],
                  parser: Optional[ScriptArrayParser] = None) -> List[PageItem]:
    """
    Page images of a chapter page.

    The script-array strategy runs first; the DOM strategy only runs when it
    found nothing.
    """
    urls: List[str] = []

    if page_spec is not None and page_spec.array_var is not None:
        urls = extract_array_urls(document, page_spec.array_var, parser or RegexArrayParser())

    if not urls:
        selectors = page_spec.dom_selectors() if page_spec is not None else ["img"]
        for selector in selectors:
            spec = SelectorSpec(
                selector=selector,
                attribute=(page_spec.attribute if page_spec else None) or "src",
                multiple=True,
                parse_script_json=bool(page_spec and page_spec.parse_script_json),
                json_path=page_spec.json_path if page_spec else None,
                arranger=page_spec.arranger if page_spec else None,
            )
            urls = [
                value.strip() for value in extract(document, spec)
                if isinstance(value, str) and value.strip().startswith("http")
            ]
            if urls:
                break

    return [PageItem(page=number, url=url) for number, url in enumerate(urls, start=1)]


async def resolve_chapter(
    fetcher,
    spider: SpiderConfig,
    manga_id: Optional[str],
    chapter: Optional[int] = None,
    chapter_url: Optional[str] = None,
    parser: Optional[ScriptArrayParser] = None,
) -> ChapterResolution:
    """
    Resolve the pages of a chapter.

    Args:
        fetcher: Object exposing ``fetch_text``
        spider: Spider config with a ``profileById`` block
        manga_id: Raw manga id, substituted into the profile URL
        chapter: 1-based chapter ordinal in arranged order
        chapter_url: Direct chapter link; skips ordinal lookup when given
        parser: Script-array parser override

    Returns:
        ChapterResolution; pages are empty when anything could not be resolved
    """
    result = ChapterResolution()
    item_config = spider.item_config
    profile_by_id = item_config.profile_by_id if item_config else None
    if profile_by_id is None:
        logger.warning(f"Spider '{spider.id}' has no profileById block")
        return result

    target = profile_by_id.profile_target
    base_url = profile_url(profile_by_id, manga_id) if manga_id else ""
    chapters: List[ChapterItem] = []

    if manga_id:
        logger.info(f"Fetching profile page: {base_url}")
        profile_html = await fetcher.fetch_text(base_url)
        if profile_html is None and not chapter_url:
            return result
        if profile_html is not None:
            document = parse_html(profile_html)
            if target.name is not None:
                title = extract(document, target.name.prepared({"text": True}, multiple=False))
                result.manga_title = title if isinstance(title, str) else ""
            chapters = collect_chapters(document, target.chapters, base_url)
            result.max_chapter_count = len(chapters)
            logger.info(f"Found {len(chapters)} chapters for manga {manga_id}")

    if chapter_url:
        target_url = absolute_url(chapter_url, base_url)
        entry = next((c for c in chapters if c['url'] == target_url), None)
        if entry is not None:
            result.chapter_title = entry['title'] or f"Chapter {entry['number']}"
    else:
        if chapter is None:
            return result
        result.chapter_title = f"Chapter {chapter}"
        if not 1 <= chapter <= len(chapters):
            logger.info(f"Chapter {chapter} out of range (have {len(chapters)})")
            return result
        entry = chapters[chapter - 1]
        target_url = entry['url']
        if entry['title']:
            result.chapter_title = entry['title']

    logger.info(f"Fetching chapter page: {target_url}")
    chapter_html = await fetcher.fetch_text(target_url)
    if chapter_html is None:
        return result

    pages = resolve_pages(parse_html(chapter_html), target.page_image, parser)
    result.pages = [dict(page) for page in pages]
    logger.info(f"Resolved {len(pages)} pages from {target_url}")
    return result
