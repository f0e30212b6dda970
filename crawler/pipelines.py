"""Record pipelines run on every assembled manga item."""
import logging
from urllib.parse import urljoin

logger = logging.getLogger(__name__)


def absolute_url(url: str, base_url: str) -> str:
    """Resolve ``url`` against ``base_url`` unless it is already absolute."""
    if not url or url.startswith(("http://", "https://")) or not base_url:
        return url
    return urljoin(base_url, url)


class AbsoluteUrlPipeline:
    """Make image links absolute against the page they were found on."""

    def process_item(self, item, base_url: str):
        image = item.get('manga_image')
        if isinstance(image, str) and image:
            item['manga_image'] = absolute_url(image, base_url)
        return item


class GenreCleanupPipeline:
    """Strip genre labels, drop empty ones and de-duplicate in order."""

    def process_item(self, item, base_url: str):
        if 'genres' not in item:
            return item

        seen = set()
        genres = []
        for genre in item['genres']:
            if not isinstance(genre, str):
                genre = str(genre)
            genre = genre.strip()
            if genre and genre not in seen:
                seen.add(genre)
                genres.append(genre)

        if len(genres) != len(item['genres']):
            logger.debug(f"Genres cleaned: {len(item['genres'])} -> {len(genres)}")
        item['genres'] = genres
        return item


ITEM_PIPELINES = (
    AbsoluteUrlPipeline(),
    GenreCleanupPipeline(),
)


def run_pipelines(item, base_url: str):
    """Pass ``item`` through every configured pipeline in order."""
    for pipeline in ITEM_PIPELINES:
        item = pipeline.process_item(item, base_url)
    return item
