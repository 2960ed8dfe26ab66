"""Command line entry point: serve the API, analyze a URL, seed and check the store."""

import asyncio
import json
import logging
import os
import sys

import click

from .catalog_db import CatalogStore
from .config import INITIAL_CATEGORIES
from .config import INITIAL_TOOLS
from .config import database_path
from .config import log_level
from .config import web_port
from .logging_config import setup_logging
from .schemas import CategoryCreate
from .schemas import ToolCreate
from .url_analyzer import AnalysisSuccess
from .url_analyzer import UrlAnalyzer

logger = logging.getLogger(__name__)


@click.group()
@click.option("--db", "db_path", default=None, help="SQLite database path (defaults to CATALOG_DB_PATH)")
@click.pass_context
def main(ctx: click.Context, db_path: str) -> None:
    """AI tool catalog."""
    setup_logging(log_level())
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path or database_path()


@main.command()
@click.option("--port", default=None, type=int, help="Port to listen on (defaults to WEB_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
@click.pass_context
def serve(ctx: click.Context, port: int, reload: bool) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    port = port or web_port()
    logger.info("Starting server on port %d (db=%s)", port, ctx.obj["db_path"])
    # The app factory reads CATALOG_DB_PATH, including in reload workers
    os.environ["CATALOG_DB_PATH"] = ctx.obj["db_path"]
    uvicorn.run("ai_tool_catalog.web:create_app", factory=True, host="0.0.0.0", port=port, reload=reload)


@main.command()
@click.argument("url")
@click.option("--save", is_flag=True, help="Create the extracted tool in the store")
@click.pass_context
def analyze(ctx: click.Context, url: str, save: bool) -> None:
    """Run the ingestion pipeline once for URL and print the result as JSON."""
    store = CatalogStore(ctx.obj["db_path"])
    analyzer = UrlAnalyzer.for_store(store)
    outcome = asyncio.run(analyzer.analyze_url(url))
    click.echo(json.dumps(outcome.to_wire(), indent=2))

    if not isinstance(outcome, AnalysisSuccess):
        sys.exit(1)
    if save:
        tool = store.create_tool(outcome.data.to_tool_create(url))
        click.echo(f"Saved tool {tool.name!r} as {tool.id}")


@main.command()
@click.pass_context
def seed(ctx: click.Context) -> None:
    """Create the initial categories and sample tools when the store has none."""
    store = CatalogStore(ctx.obj["db_path"])
    if store.list_categories():
        click.echo("Store already has categories; nothing to seed")
        return
    category_ids = {}
    for name in INITIAL_CATEGORIES:
        category = store.create_category(CategoryCreate(name=name))
        category_ids[name] = category.id
        click.echo(f"Created category {category.name!r} ({category.id})")
    for entry in INITIAL_TOOLS:
        fields = dict(entry)
        category_name = fields.pop("category")
        tool = store.create_tool(ToolCreate(category_id=category_ids[category_name], **fields))
        click.echo(f"Created tool {tool.name!r} in {category_name!r}")


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Report catalog invariant violations; exits non-zero when any are found."""
    store = CatalogStore(ctx.obj["db_path"])
    problems = store.integrity_problems()
    if not problems:
        click.echo("Catalog is consistent")
        return
    for problem in problems:
        click.echo(f"- {problem}")
    sys.exit(1)


if __name__ == "__main__":
    main()
