import asyncio

import httpx

from crawler.loader import HtmlFetcher, load_manifest, load_spider_config

from conftest import FakeFetcher, spider_document


def run(coro):
    return asyncio.run(coro)


def mock_fetcher(handler):
    return HtmlFetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


# --- HtmlFetcher ---

def test_fetch_text_ok():
    fetcher = mock_fetcher(lambda request: httpx.Response(200, text="<html>ok</html>"))
    assert run(fetcher.fetch_text("http://site.test/")) == "<html>ok</html>"


def test_fetch_non_2xx_is_absence():
    fetcher = mock_fetcher(lambda request: httpx.Response(503, text="busy"))
    assert run(fetcher.fetch_text("http://site.test/")) is None
    assert run(fetcher.fetch_bytes("http://site.test/img.jpg")) is None


def test_fetch_network_error_is_absence():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    fetcher = mock_fetcher(handler)
    assert run(fetcher.fetch_json("http://site.test/manifest.json")) is None


def test_fetch_json_rejects_non_json():
    fetcher = mock_fetcher(lambda request: httpx.Response(200, text="<html/>"))
    assert run(fetcher.fetch_json("http://site.test/manifest.json")) is None


# --- Manifest ---

def test_load_manifest():
    fetcher = FakeFetcher()
    fetcher.documents["http://m/"] = {"crawlers": [{"id": "a", "name": "A", "link": "https://a.test/s.json"}]}

    manifest = run(load_manifest(fetcher, "http://m/"))

    assert [c.id for c in manifest.crawlers] == ["a"]
    assert manifest.find("a").name == "A"
    assert manifest.find("b") is None


def test_load_manifest_invalid_link():
    fetcher = FakeFetcher()
    fetcher.documents["http://m/"] = {"crawlers": [{"id": "a", "name": "A", "link": "not a url"}]}
    assert run(load_manifest(fetcher, "http://m/")) is None


def test_load_manifest_unreachable():
    assert run(load_manifest(FakeFetcher(), "http://m/")) is None


# --- Spider config ---

def test_load_wrapped_spider_config():
    fetcher = FakeFetcher()
    fetcher.documents["http://s/"] = {"spider": spider_document(), "token": "anything"}

    spider = run(load_spider_config(fetcher, "http://s/"))

    assert spider.id == "alpha"
    assert spider.item_config.profile_by_id.profile_target.chapters.arranger == "newestFirst"
    assert spider.item_config.profile_by_id.profile_target.page_image.array_var.variable_names == ["pages"]


def test_load_bare_spider_config():
    fetcher = FakeFetcher()
    fetcher.documents["http://s/"] = spider_document()
    assert run(load_spider_config(fetcher, "http://s/")).name == "Alpha"


def test_load_spider_config_missing_required_key():
    document = spider_document()
    del document["targetUrl"]
    fetcher = FakeFetcher()
    fetcher.documents["http://s/"] = document
    assert run(load_spider_config(fetcher, "http://s/")) is None


def test_search_url_escapes_query():
    from crawler.spider_config import SpiderConfig
    spider = SpiderConfig.model_validate(spider_document(target_url="http://a/s?q={query}&p=1"))
    assert spider.search_url("one piece/1&2") == "http://a/s?q=one%20piece%2F1%262&p=1"
