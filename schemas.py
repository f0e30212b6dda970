"""Pydantic schemas for API request/response validation."""
from pydantic import BaseModel, HttpUrl, Field, ConfigDict, TypeAdapter, field_validator
from typing import Any, Dict, Optional, List, Literal


MangaField = Literal[
    "manga_id",
    "manga_name",
    "manga_description",
    "genres",
    "manga_image",
    "manga_chapters",
]


_http_url = TypeAdapter(HttpUrl)


# Registration Schemas
class RegisterRequest(BaseModel):
    """Register the manifest (connection) URL to aggregate from."""
    connection_url: str = Field(..., alias="connectionUrl", description="Manifest URL")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("connection_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Must be an http(s) URL; stored exactly as given."""
        value = value.strip()
        _http_url.validate_python(value)
        return value


class CrawlerSchema(BaseModel):
    """A manifest entry."""
    id: str
    name: str
    link: str


class RegisterResponse(BaseModel):
    """Response after registering a connection."""
    success: bool
    manifest: List[CrawlerSchema] = []


class UserResponse(BaseModel):
    """Currently active connection."""
    success: bool
    connection_url: str = Field(..., serialization_alias="connectionUrl")


# Spider Schemas
class SpiderSummary(BaseModel):
    spider_name: str
    spider_link: str


class SpiderListResponse(BaseModel):
    """Spiders offered by the active manifest."""
    spiders: List[SpiderSummary]


# Manga Schemas
class MangaRequest(BaseModel):
    """Request for one manga's profile fields."""
    manga_id: str = Field(..., min_length=1)
    spider_id: str = Field(..., min_length=1, alias="spiderId")
    fields: Optional[List[MangaField]] = None

    model_config = ConfigDict(populate_by_name=True)


class MangaResponse(BaseModel):
    """Profile records, or an error string when nothing was found."""
    spider_id: str = Field(..., serialization_alias="spiderId")
    results: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None


# Chapter Schemas
class PageSchema(BaseModel):
    page: int
    url: str


class ChapterPagesResponse(BaseModel):
    """Resolved page list of a chapter with reader metadata."""
    pages: List[PageSchema]
    chapter_title: str
    manga_title: str
    max_chapter_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)
