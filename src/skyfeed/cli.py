"""CLI interface for SkyFeed."""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from skyfeed.anchor import find_closest_with_distance, get_anchor_store, resolve_anchor
from skyfeed.client import BlueskyAPIError, BlueskyClient
from skyfeed.config import (
    CONFIG_DIR,
    clear_credentials,
    get_credentials,
    load_config,
    set_credentials,
)
from skyfeed.grouping import process_feed
from skyfeed.models import Post, parse_post_url
from skyfeed.richtext import render_text_with_links
from skyfeed.thread import flatten_thread, flatten_thread_response


console = Console()
logger = logging.getLogger("skyfeed")


def setup_logging(verbose: bool) -> None:
    """Send skyfeed logs to stderr through rich."""
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def print_post(item: dict, border_style: str = "dim") -> None:
    """Print a feed item to the console."""
    post = Post.from_dict(item.get("post") or {})

    header = f"[bold]{escape(post.author.name)}[/bold] [dim]@{escape(post.author.handle)}[/dim]"
    if post.formatted_time:
        header += f" · {post.formatted_time}"

    footer_parts = []
    if post.like_count:
        heart = "[red]♥[/red]" if post.is_liked_by_me else "♥"
        footer_parts.append(f"{heart} {post.like_count}")
    if post.repost_count:
        footer_parts.append(f"↻ {post.repost_count}")
    if post.reply_count:
        footer_parts.append(f"💬 {post.reply_count}")

    body = escape(post.text)
    if footer_parts:
        body += "\n\n[dim]" + "  ".join(footer_parts) + "[/dim]"
    if post.web_url:
        body += f"\n[dim]{post.web_url}[/dim]"

    console.print(Panel(
        body,
        title=header,
        title_align="left",
        border_style=border_style,
    ))


def print_groups(groups: list[dict]) -> None:
    """Print grouped timeline output: single posts and thread groups."""
    for group in groups:
        if group["type"] == "threadGroup":
            console.print(f"[cyan]🧵 Thread ({len(group['items'])} posts)[/cyan]")
            for item in group["items"]:
                print_post(item, border_style="cyan")
        else:
            print_post(group["item"])
        console.print()


def _load_json_file(path: Path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _client_from_config(config: dict) -> BlueskyClient:
    return BlueskyClient(
        service=config["service"],
        public_service=config["public_service"],
        timeout=config["request_timeout"],
    )


async def fetch_timeline(count: int, author: str | None = None) -> list[dict]:
    """Fetch the home timeline, or one account's posts when author is given.

    The home timeline needs stored credentials; author feeds are public.
    """
    if author:
        async with _client_from_config(load_config()) as client:
            return await client.get_author_feed(author, limit=count)

    credentials = get_credentials()
    if not credentials:
        raise click.ClickException(
            "No Bluesky credentials configured. Run: skyfeed config --handle H --app-password P"
        )

    async with _client_from_config(load_config()) as client:
        await client.login(*credentials)
        return await client.get_timeline(limit=count)


async def fetch_thread(uri: str) -> dict | None:
    """Fetch a thread, logging in first when credentials are available."""
    config = load_config()
    async with _client_from_config(config) as client:
        credentials = get_credentials()
        if credentials:
            await client.login(*credentials)
        return await client.get_post_thread(
            uri,
            depth=config["thread_depth"],
            parent_height=config["thread_parent_height"],
        )


def load_timeline(file: Path | None, count: int, author: str | None = None) -> list[dict]:
    """Read a saved feed (list or {"feed": [...]}) or fetch a live one."""
    if file is not None:
        data = _load_json_file(file)
        feed = data.get("feed") if isinstance(data, dict) else data
        if not isinstance(feed, list):
            return []
        return feed[:count]

    try:
        return asyncio.run(fetch_timeline(count, author))
    except (BlueskyAPIError, httpx.HTTPError, OSError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@click.group()
@click.version_option(package_name="skyfeed")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """SkyFeed - Read your Bluesky timeline and threads in the terminal."""
    setup_logging(verbose)


@main.command()
@click.option("--count", "-n", type=int, help="Number of posts to fetch")
@click.option("--author", "-a", help="Show one account's posts (handle or DID) instead of your home timeline")
@click.option("--file", "-f", "file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read a saved getTimeline JSON response instead of fetching")
@click.option("--json-output", "--json", "json_output", is_flag=True, help="Output as JSON")
def timeline(count: int | None, author: str | None, file: Path | None, json_output: bool):
    """Show your timeline with self-threads grouped together."""
    if count is None:
        count = load_config()["default_post_count"]

    feed = load_timeline(file, count, author)
    if not feed:
        console.print("[yellow]No posts found.[/yellow]")
        return

    groups = process_feed(feed)

    if json_output:
        click.echo(json.dumps(groups, indent=2))
    else:
        print_groups(groups)

    # Remember where we were for `skyfeed resume`
    newest = feed[0].get("post")
    if newest:
        get_anchor_store().save_post(newest)


@main.command()
@click.argument("target")
@click.option("--file", "-f", "file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read a saved getPostThread JSON response instead of fetching")
@click.option("--json-output", "--json", "json_output", is_flag=True, help="Output as JSON")
def thread(target: str, file: Path | None, json_output: bool):
    """Show the author's thread around a post (bsky.app URL or AT URI)."""
    if file is not None:
        data = _load_json_file(file)
        if isinstance(data, dict) and "thread" in data:
            posts = flatten_thread_response(data)
        else:
            posts = flatten_thread(data)
    else:
        uri = parse_post_url(target)
        if not uri:
            console.print(f"[red]Error:[/red] Not a post URL or AT URI: {escape(target)}")
            sys.exit(1)
        try:
            posts = flatten_thread(asyncio.run(fetch_thread(uri)))
        except (BlueskyAPIError, httpx.HTTPError, OSError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)

    if not posts:
        console.print("[yellow]No posts found in this thread.[/yellow]")
        return

    if json_output:
        click.echo(json.dumps(posts, indent=2))
        return

    console.print(f"\n[bold]Thread ({len(posts)} posts):[/bold]\n")
    for item in posts:
        print_post(item)


@main.command()
@click.option("--count", "-n", type=int, help="Number of posts to search")
@click.option("--file", "-f", "file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read a saved getTimeline JSON response instead of fetching")
def resume(count: int | None, file: Path | None):
    """Jump back to the post you were last reading."""
    state = get_anchor_store().load_state()
    if state.is_empty:
        console.print("[yellow]No saved position.[/yellow]")
        return

    if count is None:
        count = load_config()["default_post_count"]
    feed = load_timeline(file, count)

    item = resolve_anchor(feed, state)
    if item is None:
        console.print("[yellow]Saved position is no longer in your timeline.[/yellow]")
        return

    if state.timestamp_ms is not None:
        _, distance = find_closest_with_distance(feed, state.timestamp_ms)
        saved_at = datetime.fromtimestamp(state.timestamp_ms / 1000, tz=timezone.utc)
        console.print(
            f"[dim]Last viewed {saved_at:%Y-%m-%d %H:%M} UTC, "
            f"closest post is {distance / 1000:.0f}s away[/dim]"
        )
    print_post(item, border_style="green")


@main.command()
@click.argument("text")
@click.option("--facets", help="Facets as a JSON array (app.bsky.richtext.facet)")
def render(text: str, facets: str | None):
    """Render post text and facets to HTML."""
    parsed = None
    if facets:
        try:
            parsed = json.loads(facets)
        except json.JSONDecodeError as e:
            console.print(f"[red]Error:[/red] Invalid facets JSON: {escape(str(e))}")
            sys.exit(1)
        if not isinstance(parsed, list):
            console.print("[red]Error:[/red] Facets must be a JSON array")
            sys.exit(1)

    click.echo(render_text_with_links(text, parsed))


@main.command()
@click.option("--handle", help="Set Bluesky handle")
@click.option("--app-password", help="Set Bluesky app password")
@click.option("--show", is_flag=True, help="Show current configuration")
def config(handle: str | None, app_password: str | None, show: bool):
    """Configure SkyFeed settings."""
    if show:
        cfg = load_config()
        table = Table(title="SkyFeed Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        credentials = get_credentials()
        table.add_row("Handle", credentials[0] if credentials else "[red]Not set[/red]")
        table.add_row("App Password", "********" if credentials else "[red]Not set[/red]")
        table.add_row("Service", cfg["service"])
        table.add_row("Public AppView", cfg["public_service"])
        table.add_row("Default Post Count", str(cfg["default_post_count"]))
        table.add_row("Config Directory", str(CONFIG_DIR))

        console.print(table)
        return

    if handle or app_password:
        if not (handle and app_password):
            console.print("[red]Error:[/red] --handle and --app-password must be set together")
            sys.exit(1)
        set_credentials(handle, app_password)
        console.print("[green]✓ Credentials saved[/green]")
        return

    # No options provided, show help
    ctx = click.get_current_context()
    click.echo(ctx.get_help())


@main.command()
def logout():
    """Forget saved credentials and the reading position."""
    clear_credentials()
    get_anchor_store().clear()
    console.print("[green]✓ Logged out and saved position cleared[/green]")


if __name__ == "__main__":
    main()
