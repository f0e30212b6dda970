"""
CLI utility for the manga aggregator backend.

Usage:
    python cli.py register <url>                      # Register a manifest URL
    python cli.py spiders                             # List manifest spiders
    python cli.py search <query> [--fields a,b]       # Search every spider
    python cli.py manga <spider_id> <manga_id>        # Show a manga profile
    python cli.py chapter <spider_id> <manga_id> <n>  # Resolve chapter pages
"""
import argparse
import asyncio
import json
import logging
import sys

from aggregator import AggregatorError, MangaAggregator
from config import settings
from crawler.assembler import MANGA_FIELDS, parse_fields
from crawler.loader import HtmlFetcher
from database import SessionLocal, init_db
from models import get_active_connection, register_connection

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
)

DEFAULT_FIELDS = ",".join(f for f in MANGA_FIELDS if not f.startswith("page_"))


def print_json(payload):
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def run_with_aggregator(coro_factory):
    """Build an aggregator for the active connection and await ``coro_factory`` with it."""
    db = SessionLocal()
    try:
        async with HtmlFetcher() as fetcher:
            aggregator = MangaAggregator(fetcher, lambda: get_active_connection(db))
            return await coro_factory(aggregator)
    finally:
        db.close()


def cmd_register(args):
    """Register a manifest URL and list its crawlers."""
    db = SessionLocal()
    try:
        register_connection(db, args.url)
        print(f"Registered {args.url}")
    finally:
        db.close()

    manifest = asyncio.run(run_with_aggregator(lambda agg: agg.manifest(args.url)))
    print_json([
        {"id": c.id, "name": c.name, "link": str(c.link)}
        for c in manifest.crawlers
    ])


def cmd_spiders(args):
    """List spiders of the active manifest."""
    manifest = asyncio.run(run_with_aggregator(lambda agg: agg.manifest()))

    print(f"\n{'ID':<20} {'Name':<30} {'Link':<50}")
    print("-" * 100)
    for crawler in manifest.crawlers:
        print(f"{crawler.id:<20} {crawler.name:<30} {str(crawler.link):<50}")
    print(f"\nTotal: {len(manifest.crawlers)} spiders")


def cmd_search(args):
    """Search every spider and print each batch as it arrives."""
    fields = parse_fields(args.fields.split(","))

    async def run(aggregator):
        manifest = await aggregator.manifest()
        async for event in aggregator.stream_search(manifest, args.query, fields):
            if event.startswith("data: "):
                print_json(json.loads(event[len("data: "):]))

    asyncio.run(run_with_aggregator(run))


def cmd_manga(args):
    """Show the profile record of one manga."""
    fields = parse_fields(args.fields.split(","))
    results = asyncio.run(run_with_aggregator(
        lambda agg: agg.manga(args.spider_id, args.manga_id, fields)
    ))
    if not results:
        print("No results found")
        sys.exit(1)
    print_json(results[0])


def cmd_chapter(args):
    """Resolve and print the page list of a chapter."""
    resolution = asyncio.run(run_with_aggregator(
        lambda agg: agg.chapter(args.spider_id, args.manga_id, chapter=args.chapter)
    ))
    print_json(resolution.model_dump())


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Manga Aggregator CLI"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Register command
    register_parser = subparsers.add_parser("register", help="Register a manifest URL")
    register_parser.add_argument("url", help="Manifest URL")
    register_parser.set_defaults(func=cmd_register)

    # Spiders command
    spiders_parser = subparsers.add_parser("spiders", help="List manifest spiders")
    spiders_parser.set_defaults(func=cmd_spiders)

    # Search command
    search_parser = subparsers.add_parser("search", help="Search every spider")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument(
        "--fields",
        default=DEFAULT_FIELDS,
        help="Comma separated record fields"
    )
    search_parser.set_defaults(func=cmd_search)

    # Manga command
    manga_parser = subparsers.add_parser("manga", help="Show a manga profile")
    manga_parser.add_argument("spider_id", help="Spider id from the manifest")
    manga_parser.add_argument("manga_id", help="Manga id")
    manga_parser.add_argument(
        "--fields",
        default=DEFAULT_FIELDS,
        help="Comma separated record fields"
    )
    manga_parser.set_defaults(func=cmd_manga)

    # Chapter command
    chapter_parser = subparsers.add_parser("chapter", help="Resolve chapter pages")
    chapter_parser.add_argument("spider_id", help="Spider id from the manifest")
    chapter_parser.add_argument("manga_id", help="Manga id")
    chapter_parser.add_argument("chapter", type=int, help="1-based chapter number")
    chapter_parser.set_defaults(func=cmd_chapter)

    # Parse arguments
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    init_db()

    # Run command
    try:
        args.func(args)
    except AggregatorError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
