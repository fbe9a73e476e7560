"""Command-line utilities for anchorlight.

``anchorlight-reanchor`` re-applies stored highlights to a saved HTML page
and reports what happened to each one. ``anchorlight-link`` prints a deep
link that scrolls a page to a passage.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from anchorlight.anchoring.deeplink import build_deep_link
from anchorlight.anchoring.engine import HighlightEngine
from anchorlight.anchoring.models import Position
from anchorlight.dom.tree import parse_html
from anchorlight.store import MemoryFragmentStore, import_fragments

if TYPE_CHECKING:
    from anchorlight.anchoring.models import BatchReport, MaterializeResult

console = Console()


def _build_reanchor_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anchorlight-reanchor",
        description="Re-apply stored highlights to an HTML page.",
    )
    parser.add_argument("page", type=Path, help="HTML file to mark up")
    parser.add_argument("fragments", type=Path, help="JSON array of fragment records")
    parser.add_argument("--url", required=True, help="URL the page was captured from")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Where to write the marked HTML (default: report only)",
    )
    return parser


def _print_report(report: BatchReport[MaterializeResult], con: Console) -> None:
    table = Table(title="Re-anchored highlights")
    table.add_column("Fragment", style="cyan")
    table.add_column("Outcome")
    table.add_column("Via")
    table.add_column("Marked text")

    for result in report.results:
        if result.success:
            outcome = "[green]Marked[/]"
            text = result.marker.text_content if result.marker is not None else ""
        else:
            outcome = f"[red]{result.error}[/]"
            text = ""
        table.add_row(result.fragment_id, outcome, str(result.state), text[:60])

    con.print(table)
    con.print(
        f"Processed: {report.processed}  Failed: {report.failed}  "
        f"Chunks: {report.chunks}"
    )


async def _reanchor(
    page: Path,
    fragments: Path,
    url: str,
    output: Path | None,
    *,
    console: Console | None = None,
) -> int:
    con = console or globals()["console"]
    store = MemoryFragmentStore()
    try:
        imported = await import_fragments(store, fragments.read_text(encoding="utf-8"))
    except ValueError as exc:
        con.print(f"[red]Error:[/] {exc}")
        return 1
    if imported.failed:
        con.print(f"[yellow]Skipped {imported.failed} invalid record(s)[/]")

    engine = HighlightEngine(parse_html(page.read_text(encoding="utf-8")), store, page_url=url)
    async with engine:
        loaded = await engine.load()
        if not loaded.success:
            con.print(f"[red]Error:[/] {loaded.error}")
            return 1
        report = await engine.render_page_highlights()

    _print_report(report, con)
    if output is not None:
        output.write_text(engine.to_html(), encoding="utf-8")
        con.print(f"Wrote [bold]{output}[/]")
    unmarked = sum(1 for result in report.results if not result.success)
    return 0 if report.failed == 0 and unmarked == 0 else 2


def reanchor() -> None:
    """Entry point for ``anchorlight-reanchor``."""
    from anchorlight import _setup_logging

    args = _build_reanchor_parser().parse_args()
    _setup_logging()
    for path in (args.page, args.fragments):
        if not path.is_file():
            console.print(f"[red]Error:[/] {path} not found")
            sys.exit(1)
    sys.exit(asyncio.run(_reanchor(args.page, args.fragments, args.url, args.output)))


def link() -> None:
    """Entry point for ``anchorlight-link``."""
    parser = argparse.ArgumentParser(
        prog="anchorlight-link",
        description="Print a deep link that scrolls a page to a passage.",
    )
    parser.add_argument("url", help="Page URL")
    parser.add_argument("text", help="Passage to link to")
    parser.add_argument("--top", type=float, default=None, help="Approximate top offset (px)")
    parser.add_argument("--left", type=float, default=0.0, help="Approximate left offset (px)")
    args = parser.parse_args()

    position = Position(top=args.top, left=args.left) if args.top is not None else None
    console.print(build_deep_link(args.url, args.text, position), soft_wrap=True)
