"""FastAPI application - main entry point."""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from aggregator import AggregatorError, MangaAggregator
from config import settings
from crawler.assembler import parse_fields
from crawler.loader import HtmlFetcher
from database import get_db, init_db
from models import get_active_connection, register_connection
from schemas import (
    RegisterRequest, RegisterResponse, CrawlerSchema, UserResponse,
    SpiderListResponse, SpiderSummary, MangaRequest, MangaResponse,
    ChapterPagesResponse,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    async with HtmlFetcher() as fetcher:
        app.state.fetcher = fetcher
        yield


# Create FastAPI app
app = FastAPI(
    title="Manga Aggregator API",
    description="Manifest-driven manga search, profiles and chapter reader",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(AggregatorError)
async def aggregator_error_handler(request: Request, exc: AggregatorError):
    logger.error(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


def get_fetcher(request: Request):
    """Shared HTTP fetcher created at startup."""
    return request.app.state.fetcher


def get_aggregator(
    fetcher=Depends(get_fetcher),
    db: Session = Depends(get_db),
) -> MangaAggregator:
    """Aggregator bound to the connection active when the request arrived."""
    connection_url = get_active_connection(db)
    return MangaAggregator(fetcher, lambda: connection_url)


# ============================================================================
# Connection Endpoints
# ============================================================================

@app.post("/api/register", response_model=RegisterResponse, tags=["Connection"])
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    aggregator: MangaAggregator = Depends(get_aggregator),
):
    """
    Register a manifest URL.

    The URL is stored even if its manifest cannot be loaded right now.
    """
    connection_url = request.connection_url
    await run_in_threadpool(register_connection, db, connection_url)
    logger.info(f"Registered connection {connection_url}")

    manifest = await aggregator.manifest(connection_url)

    return RegisterResponse(
        success=True,
        manifest=[
            CrawlerSchema(id=c.id, name=c.name, link=str(c.link))
            for c in manifest.crawlers
        ],
    )


@app.get("/api/user", response_model=UserResponse, tags=["Connection"])
def get_user(db: Session = Depends(get_db)):
    """Get the active connection URL."""
    connection_url = get_active_connection(db)
    if not connection_url:
        raise HTTPException(status_code=404, detail="No connection URL found")
    return UserResponse(success=True, connection_url=connection_url)


@app.post("/api/spiders", response_model=SpiderListResponse, tags=["Spiders"])
async def list_spiders(aggregator: MangaAggregator = Depends(get_aggregator)):
    """List spiders of the active manifest."""
    manifest = await aggregator.manifest()
    return SpiderListResponse(
        spiders=[
            SpiderSummary(spider_name=c.name, spider_link=str(c.link))
            for c in manifest.crawlers
        ]
    )


# ============================================================================
# Manga Endpoints
# ============================================================================

@app.get("/api/search", tags=["Manga"])
async def search(
    request: Request,
    query: str = "",
    fields: str = "",
    aggregator: MangaAggregator = Depends(get_aggregator),
):
    """
    Search every spider of the manifest.

    Streams one event per spider as soon as it finishes, then ``done``.
    """
    manifest = await aggregator.manifest()
    requested = parse_fields(fields.split(","))

    return StreamingResponse(
        aggregator.stream_search(manifest, query, requested, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.post(
    "/api/manga",
    response_model=MangaResponse,
    response_model_exclude_none=True,
    tags=["Manga"],
)
async def get_manga(
    request: MangaRequest,
    aggregator: MangaAggregator = Depends(get_aggregator),
):
    """Get profile fields of one manga from one spider."""
    results = await aggregator.manga(request.spider_id, request.manga_id, request.fields or [])

    if not results:
        return MangaResponse(spider_id=request.spider_id, error="No results found")
    return MangaResponse(spider_id=request.spider_id, results=results)


# ============================================================================
# Chapter Endpoints
# ============================================================================

async def _resolve(aggregator: MangaAggregator, spider_id: str, manga: str,
                   chapter: Optional[int], chapter_url: Optional[str]):
    if chapter is None and not chapter_url:
        raise HTTPException(status_code=422, detail="Either chapter or chapterUrl is required")
    return await aggregator.chapter(spider_id, manga, chapter=chapter, chapter_url=chapter_url)


@app.get("/api/chapter/pages", response_model=ChapterPagesResponse, tags=["Chapters"])
async def get_chapter_pages(
    spider_id: str = Query(..., alias="spiderId", min_length=1),
    manga: str = Query(..., min_length=1),
    chapter: Optional[int] = Query(None, ge=0),
    chapter_url: Optional[str] = Query(None, alias="chapterUrl"),
    aggregator: MangaAggregator = Depends(get_aggregator),
):
    """Resolve a chapter's page URLs without downloading the images."""
    resolution = await _resolve(aggregator, spider_id, manga, chapter, chapter_url)
    return ChapterPagesResponse.model_validate(resolution.model_dump())


@app.get("/api/chapter", tags=["Chapters"])
async def read_chapter(
    request: Request,
    spider_id: str = Query(..., alias="spiderId", min_length=1),
    manga: str = Query(..., min_length=1),
    chapter: Optional[int] = Query(None, ge=0),
    chapter_url: Optional[str] = Query(None, alias="chapterUrl"),
    aggregator: MangaAggregator = Depends(get_aggregator),
):
    """
    Stream a chapter's page images as data URIs.

    Each event also carries the chapter metadata for the reader header.
    """
    resolution = await _resolve(aggregator, spider_id, manga, chapter, chapter_url)

    return StreamingResponse(
        aggregator.stream_chapter(resolution, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "manga-aggregator"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
