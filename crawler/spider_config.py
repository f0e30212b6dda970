"""
Declarative spider configuration models.

A spider document is hosted remotely and describes, per target site, how to
build URLs and which Selector Specs pull each field out of a page. Keys in the
JSON documents are camelCase (``parseScriptJson``) or PascalCase
(``ProfileTarget``); the models expose snake_case attributes and accept both.
"""
from typing import List, Literal, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


Arranger = Literal["newestFirst", "oldestFirst"]


class ConfigModel(BaseModel):
    """Base for spider config models: lenient, alias aware, read-only."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class SelectorSpec(ConfigModel):
    """One field's extraction rule."""
    selector: Optional[str] = None
    attribute: Optional[str] = None
    text: bool = False
    multiple: bool = False
    parse_script_json: bool = Field(False, alias="parseScriptJson")
    json_path: Optional[str] = Field(None, alias="jsonPath")
    arranger: Optional[Arranger] = None

    @property
    def extracts_explicitly(self) -> bool:
        """True when the config picks text, attribute or JSON extraction itself."""
        return bool(self.text or self.attribute or self.parse_script_json)

    def prepared(self, extraction: Optional[dict] = None, **shape) -> "SelectorSpec":
        """
        Copy of this spec adapted to a field of a known kind.

        Args:
            extraction: Extraction keys (``text``/``attribute``) used only when
                the config picks no extraction mode of its own
            **shape: Keys forced regardless of the config, e.g. ``multiple``

        Returns:
            The adapted spec
        """
        update = dict(extraction or {}) if not self.extracts_explicitly else {}
        update.update(shape)
        return self.model_copy(update=update) if update else self


class ArrayVarSpec(ConfigModel):
    """Locate a JS array literal assigned to a variable inside a script tag."""
    variable_names: List[str] = Field(default_factory=list, alias="variableNames")
    script_match: str = Field("", alias="scriptMatch")
    match_pattern: Optional[str] = Field(None, alias="matchPattern")


class PageImageSpec(SelectorSpec):
    """Selector Spec for chapter page images, with the script-array mode."""
    array_var: Optional[ArrayVarSpec] = Field(None, alias="arrayVar")
    selectors: List[str] = Field(default_factory=list)

    def dom_selectors(self) -> List[str]:
        """Selectors tried by the DOM fallback, in order."""
        candidates = ([self.selector] if self.selector else []) + list(self.selectors)
        return candidates or ["img"]


class ProfileTarget(ConfigModel):
    """Field specs evaluated against a manga profile page."""
    url: Optional[SelectorSpec] = Field(None, alias="Url")
    image: Optional[SelectorSpec] = Field(None, alias="Image")
    name: Optional[SelectorSpec] = Field(None, alias="Name")
    description: Optional[SelectorSpec] = Field(None, alias="Description")
    genres: Optional[SelectorSpec] = Field(None, alias="Genres")
    manga_id: Optional[SelectorSpec] = Field(None, alias="MangaID")
    chapters: SelectorSpec = Field(..., alias="Chapters")
    page_image: Optional[PageImageSpec] = Field(None, alias="PageImage")

    def spec(self, attr: str) -> Optional[SelectorSpec]:
        """Field spec for ``attr``; the profile link stands in for a missing id."""
        found = getattr(self, attr, None)
        if found is None and attr == "manga_id":
            found = self.url
        return found


class IdReplacement(ConfigModel):
    """Regex substitution applied to a manga id before it enters a URL."""
    pattern: str
    with_: str = Field("", alias="with")


class ProfileById(ConfigModel):
    """How to reach and read a manga profile page from its id."""
    url_pattern: str = Field(..., alias="urlPattern")
    replace: Optional[IdReplacement] = None
    profile_target: ProfileTarget = Field(..., alias="ProfileTarget")


# Search-hit specs used when a field's own spec is missing
SEARCH_FALLBACKS = {
    "manga_id": "profile_link",
    "description": "highlight_text",
}


class ItemConfig(ConfigModel):
    """Search-result and profile extraction rules of a spider."""
    selector: Optional[str] = None
    profile_link: Optional[SelectorSpec] = Field(None, alias="ProfileLink")
    profile_target: Optional[ProfileTarget] = Field(None, alias="ProfileTarget")
    name: Optional[SelectorSpec] = Field(None, alias="Name")
    highlight_text: Optional[SelectorSpec] = Field(None, alias="HighlightText")
    description: Optional[SelectorSpec] = Field(None, alias="Description")
    genres: Optional[SelectorSpec] = Field(None, alias="Genres")
    image: Optional[SelectorSpec] = Field(None, alias="Image")
    manga_id: Optional[SelectorSpec] = Field(None, alias="MangaID")
    chapters: Optional[SelectorSpec] = Field(None, alias="Chapters")
    profile_by_id: Optional[ProfileById] = Field(None, alias="profileById")

    def search_spec(self, attr: str) -> Optional[SelectorSpec]:
        """
        Search field spec for ``attr``.

        Looks at the field itself, then its search-hit stand-in (``ProfileLink``
        for the id, ``HighlightText`` for the description), then the
        ``ProfileTarget`` block.
        """
        spec = getattr(self, attr, None)
        if spec is None and attr in SEARCH_FALLBACKS:
            spec = getattr(self, SEARCH_FALLBACKS[attr])
        if spec is None and self.profile_target is not None:
            spec = self.profile_target.spec(attr)
        return spec


class SpiderConfig(ConfigModel):
    """A per-site scraping definition."""
    id: str
    name: str
    description: Optional[str] = None
    target_url: str = Field(..., alias="targetUrl")
    item_config: Optional[ItemConfig] = Field(None, alias="itemConfig")

    def search_url(self, query: str) -> str:
        """Fill the ``{query}`` placeholder, escaped like ``encodeURIComponent``."""
        return self.target_url.replace("{query}", quote(query, safe="!~*'()"))


class CrawlerEntry(ConfigModel):
    """A manifest entry pointing at a hosted spider document."""
    id: str
    name: str
    link: HttpUrl


class Manifest(ConfigModel):
    """The list of spiders available to a connection."""
    crawlers: List[CrawlerEntry] = Field(default_factory=list)

    def find(self, spider_id: str) -> Optional[CrawlerEntry]:
        return next((c for c in self.crawlers if c.id == spider_id), None)
