import argparse
import asyncio
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.table import Table

from engine.config import get_store_path, save_config
from engine.logging_config import configure_logging
from engine.jobs import run_digest_sweep, run_theme_detection
from engine.scoring import build_personalized_feed
from engine.search import hybrid_search
from engine.store import InMemoryStore

console = Console()


def _load_store(args) -> tuple[InMemoryStore, Path]:
    path = Path(args.store) if args.store else get_store_path()
    return InMemoryStore.load(path), path


def _time_ago(published_at: datetime) -> str:
    hours = int((datetime.now(timezone.utc) - published_at).total_seconds() // 3600)
    if hours < 1:
        return "just now"
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


async def cmd_detect_themes(args) -> None:
    store, path = _load_store(args)
    with console.status("[cyan]Detecting themes..."):
        result = await run_theme_detection(store)
    store.save(path)
    console.print(
        f"[green]Themes created: {result.themes_created}[/] "
        f"(topics processed {result.topics_processed}, with themes "
        f"{result.topics_with_themes}, expired removed "
        f"{result.expired_themes_removed}, failed {result.failed})"
    )


def cmd_send_digests(args) -> None:
    store, path = _load_store(args)
    result = run_digest_sweep(store, hour=args.hour)
    store.save(path)
    console.print(
        f"[green]Hour {result.hour:02d}:[/] {result.digests_generated} digests generated, "
        f"{result.skipped} skipped, {result.failed} failed "
        f"({result.users_processed} users)"
    )


async def cmd_search(args) -> None:
    store, _ = _load_store(args)
    response = await hybrid_search(store, args.query, args.limit)
    if not response.results:
        console.print("[yellow]No results.[/]")
        return

    keyword_ids = {c.id for c in response.keyword_results}
    semantic_ids = {c.id for c in response.semantic_results}
    table = Table(title=f"Search: {args.query}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Match", style="cyan")
    table.add_column("Published", style="dim")
    for i, content in enumerate(response.results, 1):
        match = "+".join(
            label
            for label, ids in (("keyword", keyword_ids), ("semantic", semantic_ids))
            if content.id in ids
        )
        table.add_row(str(i), content.title, match, _time_ago(content.published_at))
    console.print(table)


def cmd_feed(args) -> None:
    store, _ = _load_store(args)
    page = build_personalized_feed(store, args.user_id, limit=args.limit)
    if not page.items:
        console.print("[yellow]Feed is empty.[/]")
        return

    table = Table(title=f"Feed for {args.user_id} ({page.total} scored)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Quality", justify="right")
    table.add_column("Topic", justify="right")
    table.add_column("Recency", justify="right")
    for i, item in enumerate(page.items, 1):
        b = item.breakdown
        table.add_row(
            str(i),
            item.content.title,
            f"{item.score:.1f}",
            f"{b.base_score:.0f}",
            f"{b.topic_match:.1f}",
            f"{b.recency_boost:.0f}",
        )
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Theme detection, digests, feed scoring and search over a content store."
    )
    parser.add_argument("--store", help="Path to the JSON store snapshot")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument(
        "--save-store",
        action="store_true",
        help="Remember --store as the default store path",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("detect-themes", help="Detect and store trending themes")

    digests = sub.add_parser("send-digests", help="Generate digests for one UTC hour")
    digests.add_argument(
        "--hour", type=int, default=None, help="UTC hour (default: current hour)"
    )

    search = sub.add_parser("search", help="Hybrid keyword + semantic search")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=20)

    feed = sub.add_parser("feed", help="Show a user's personalized feed")
    feed.add_argument("user_id")
    feed.add_argument("--limit", type=int, default=20)
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    if args.save_store and args.store:
        save_config("store_path", args.store)

    if args.command == "detect-themes":
        asyncio.run(cmd_detect_themes(args))
    elif args.command == "send-digests":
        cmd_send_digests(args)
    elif args.command == "search":
        asyncio.run(cmd_search(args))
    elif args.command == "feed":
        cmd_feed(args)


if __name__ == "__main__":
    main()
