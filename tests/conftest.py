import pytest
import os
import sys
import tempfile

# Add the application root to the path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Set test database URL before importing database module
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "test_manga_user_data.db")
os.environ["MANIFEST_URL"] = ""

from fastapi.testclient import TestClient

from database import Base, engine, SessionLocal
import models  # noqa: F401
from main import app, get_fetcher

MANIFEST_URL = "http://manifest.test/manifest.json"


class FakeFetcher:
    """In-memory stand-in for HtmlFetcher; unknown URLs behave like failed fetches."""

    def __init__(self):
        self.pages = {}
        self.documents = {}
        self.images = {}
        self.requested = []

    async def fetch_text(self, url):
        self.requested.append(url)
        return self.pages.get(url)

    async def fetch_json(self, url):
        self.requested.append(url)
        return self.documents.get(url)

    async def fetch_bytes(self, url):
        self.requested.append(url)
        return self.images.get(url)


SEARCH_HTML = """
<html><body>
  <div class="item"><h3> One Piece </h3><a class="link" href="/manga/one-piece">x</a>
    <span class="genre">Action</span><span class="genre">Adventure</span></div>
  <div class="item"><h3>Naruto</h3><a class="link" href="/manga/naruto">x</a></div>
  <div class="item"><a class="link" href="/manga/untitled">x</a></div>
</body></html>
"""

PROFILE_HTML = """
<html><body>
  <h1 class="title">One Piece</h1>
  <div class="summary"><p>Pirates.</p></div>
  <img class="cover" src="/covers/op.jpg">
  <a class="tag">Action</a><a class="tag"> Action </a><a class="tag">Comedy</a>
  <ul>
    <li><a class="chapter" href="/read/op/3">Chapter Three</a></li>
    <li><a class="chapter" href="/read/op/2">Chapter Two</a></li>
    <li><a class="chapter" href="/read/op/1">Chapter One</a></li>
  </ul>
</body></html>
"""

CHAPTER_HTML = """
<html><head>
  <script>var unrelated = ["http://ads.test/a.jpg"];</script>
  <script>
    var chapterId = 1;
    var pages = ["http://img.test/1.jpg", 'http://img.test/2.jpg', "/relative.jpg"];
  </script>
</head><body><img src="http://img.test/dom.jpg"></body></html>
"""


def spider_document(spider_id="alpha", target_url="http://alpha.test/search?q={query}"):
    return {
        "id": spider_id,
        "name": spider_id.title(),
        "targetUrl": target_url,
        "itemConfig": {
            "selector": "div.item",
            "Name": {"selector": "h3"},
            "MangaID": {"selector": "a.link", "attribute": "href"},
            "Genres": {"selector": "span.genre"},
            "profileById": {
                "urlPattern": "http://alpha.test/manga/{manga_id}",
                "ProfileTarget": {
                    "Name": {"selector": "h1.title"},
                    "Description": {"selector": "div.summary", "text": True},
                    "Image": {"selector": "img.cover", "attribute": "src"},
                    "Genres": {"selector": "a.tag"},
                    "Chapters": {
                        "selector": "a.chapter",
                        "attribute": "href",
                        "arranger": "newestFirst",
                    },
                    "PageImage": {
                        "arrayVar": {"variableNames": ["pages"], "scriptMatch": "chapterId pages"},
                    },
                },
            },
        },
    }


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def site(fetcher):
    """A manifest with one crawler whose pages are all served by the fake fetcher."""
    fetcher.documents[MANIFEST_URL] = {
        "crawlers": [{"id": "alpha", "name": "Alpha", "link": "http://alpha.test/spider.json"}]
    }
    fetcher.documents["http://alpha.test/spider.json"] = {
        "spider": spider_document(),
        "token": "ignored",
    }
    fetcher.pages["http://alpha.test/search?q=one%20piece"] = SEARCH_HTML
    fetcher.pages["http://alpha.test/manga/one-piece"] = PROFILE_HTML
    fetcher.pages["http://alpha.test/read/op/1"] = CHAPTER_HTML
    return fetcher


@pytest.fixture
def client(fetcher):
    app.dependency_overrides[get_fetcher] = lambda: fetcher

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as client:
        yield client

    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.clear()


@pytest.fixture
def registered(client):
    """Register MANIFEST_URL directly in the store."""
    db = SessionLocal()
    try:
        models.register_connection(db, MANIFEST_URL)
    finally:
        db.close()
    return MANIFEST_URL
