import asyncio

from crawler.assembler import (
    WARNING_FETCH_FAILED, WARNING_INVALID_CONFIG, WARNING_NO_CONTENT,
    assemble_record, manga_details, parse_fields, search_spider,
)
from crawler.extractor import parse_html, select_nodes
from crawler.spider_config import SelectorSpec, SpiderConfig

from conftest import FakeFetcher, spider_document

ALL_FIELDS = ["manga_id", "manga_name", "genres", "manga_image", "manga_description", "manga_chapters"]


def search(fetcher, spider, query="one piece", fields=ALL_FIELDS):
    return asyncio.run(search_spider(fetcher, spider, query, fields))


def test_search_one_record_per_element(site):
    spider = SpiderConfig.model_validate(spider_document())

    results, warning = search(site, spider)

    assert warning is None
    assert len(results) == 3
    assert [r.get("manga_name") for r in results] == ["One Piece", "Naruto", None]
    assert "manga_name" not in results[2]
    assert results[0]["manga_id"] == "/manga/one-piece"
    assert results[0]["genres"] == ["Action", "Adventure"]
    assert results[1]["genres"] == []


def test_search_omits_unrequested_and_unconfigured_fields(site):
    spider = SpiderConfig.model_validate(spider_document())

    results, _ = search(site, spider, fields=["manga_name", "manga_image"])

    assert results[0] == {"manga_name": "One Piece"}


def test_search_falls_back_to_profile_target_specs(site):
    document = spider_document()
    document["itemConfig"]["ProfileTarget"] = {
        "Image": {"selector": "a.link", "attribute": "href"},
        "Chapters": {"selector": "a.none"},
    }
    spider = SpiderConfig.model_validate(document)

    results, _ = search(site, spider, fields=["manga_image"])

    assert results[0]["manga_image"] == "http://alpha.test/manga/one-piece"


def test_search_hit_stand_ins_for_id_and_description(site):
    document = spider_document()
    del document["itemConfig"]["MangaID"]
    document["itemConfig"]["ProfileLink"] = {"selector": "a.link", "attribute": "href"}
    document["itemConfig"]["HighlightText"] = {"selector": "h3"}
    spider = SpiderConfig.model_validate(document)

    results, _ = search(site, spider, fields=["manga_id", "manga_description"])

    assert results[0] == {"manga_id": "/manga/one-piece", "manga_description": "One Piece"}


def test_profile_url_spec_stands_in_for_missing_id():
    document = spider_document()
    document["itemConfig"]["profileById"]["ProfileTarget"]["Url"] = {"selector": "a"}
    target = SpiderConfig.model_validate(document).item_config.profile_by_id.profile_target

    assert target.spec("manga_id").selector == "a"
    assert target.spec("name").selector == "h1.title"


def test_search_without_matches(site):
    document = spider_document()
    document["itemConfig"]["selector"] = "div.nothing"

    results, warning = search(site, SpiderConfig.model_validate(document))

    assert results == []
    assert warning == WARNING_NO_CONTENT


def test_search_invalid_config():
    document = spider_document()
    del document["itemConfig"]["selector"]

    results, warning = search(FakeFetcher(), SpiderConfig.model_validate(document))

    assert (results, warning) == ([], WARNING_INVALID_CONFIG)


def test_search_fetch_failure():
    results, warning = search(FakeFetcher(), SpiderConfig.model_validate(spider_document()))
    assert (results, warning) == ([], WARNING_FETCH_FAILED)


def test_manga_details(site):
    spider = SpiderConfig.model_validate(spider_document())

    [record] = asyncio.run(manga_details(site, spider, "one-piece", ALL_FIELDS))

    assert record["manga_id"] == "one-piece"
    assert record["manga_name"] == "One Piece"
    assert record["manga_description"] == "Pirates."
    assert record["manga_image"] == "http://alpha.test/covers/op.jpg"
    assert record["genres"] == ["Action", "Comedy"]
    assert record["max_chapters"] == 3
    assert [c["title"] for c in record["manga_chapters"]] == ["Chapter One", "Chapter Two", "Chapter Three"]
    assert record["manga_chapters"][2]["url"] == "http://alpha.test/read/op/3"


def test_manga_details_fetch_failure():
    spider = SpiderConfig.model_validate(spider_document())
    assert asyncio.run(manga_details(FakeFetcher(), spider, "one-piece", ALL_FIELDS)) == []


def test_assemble_record_from_json_script():
    doc = parse_html(
        '<div class="hit"><script type="application/json">'
        '{"name": "Vagabond", "tags": ["Seinen", "Historical"]}</script></div>'
    )
    specs = {
        "name": SelectorSpec(selector="script", parse_script_json=True, json_path="$.name"),
        "genres": SelectorSpec(selector="script", parse_script_json=True, json_path="$.tags[*]"),
    }

    record = assemble_record(select_nodes(doc, "div.hit")[0], specs.get, ["manga_name", "genres"], "http://x/")

    assert dict(record) == {"manga_name": "Vagabond", "genres": ["Seinen", "Historical"]}


def test_parse_fields():
    assert parse_fields(["manga_name", " genres ", "bogus", "", "manga_name"]) == ["manga_name", "genres"]
