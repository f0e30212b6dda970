"""Scrapy items for manga data extraction."""
import scrapy


class ChapterItem(scrapy.Item):
    """Item representing one entry of a manga's chapter list."""
    number = scrapy.Field()  # 1-based position after arranging
    title = scrapy.Field()
    url = scrapy.Field()  # Absolute chapter page URL


class PageItem(scrapy.Item):
    """Item representing one page image of a chapter."""
    page = scrapy.Field()  # 1-based insertion order
    url = scrapy.Field()


class MangaItem(scrapy.Item):
    """
    Item representing one search hit or manga profile.

    Only fields that were requested and resolved get set, so ``dict(item)``
    omits everything else.
    """
    manga_id = scrapy.Field()
    manga_name = scrapy.Field()
    manga_description = scrapy.Field()
    genres = scrapy.Field()  # List of genre strings
    manga_image = scrapy.Field()
    manga_chapters = scrapy.Field()  # List of ChapterItem dictionaries
    max_chapters = scrapy.Field()  # len(manga_chapters)
