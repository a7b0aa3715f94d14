#!/usr/bin/env python3
"""Run one reconciliation pass over a saved host UI snapshot.

Usage:
    python3 scripts/scan_snapshot.py --html snapshot.html

    # Also interpret a recorded edit log (one bus message per line):
    python3 scripts/scan_snapshot.py --html snapshot.html \
      --transactions ws_log.jsonl

Structured JSON output goes to stdout; human messages go to stderr.
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson
from bs4.element import Tag

from toc_engine.dom_utils import get_attr, surface_kind
from toc_engine.io_utils import load_jsonl
from toc_engine.registry import SurfaceRegistry
from toc_engine.surface import UiTree
from toc_engine.transactions import interpret, is_transaction_message
from toc_engine.widget import RefreshContext, WidgetOptions

log = logging.getLogger("scan_snapshot")


def dump_json(obj: Any) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


@dataclass
class RecordingWidget:
    """Widget stand-in that only remembers what it was asked to show."""

    target: Tag
    refreshes: list[str] = field(default_factory=list)
    visible: bool = True

    def refresh(self, doc_id: str, context: RefreshContext) -> None:
        self.refreshes.append(doc_id)

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def destroy(self) -> None:
        self.refreshes.clear()


class RecordingFactory:
    def __init__(self) -> None:
        self.widgets: list[RecordingWidget] = []

    def create(self, container: Tag, options: WidgetOptions) -> RecordingWidget:
        widget = RecordingWidget(target=options.target)
        self.widgets.append(widget)
        return widget


def describe_host(registry: SurfaceRegistry, host: Tag) -> dict[str, Any]:
    widget = registry.widget_for(host)
    refreshes = widget.refreshes if isinstance(widget, RecordingWidget) else []
    return {
        "kind": surface_kind(host).value,
        "classes": get_attr(host, "class"),
        "doc_id": refreshes[-1] if refreshes else None,
        "doc_key": registry.cached_key(host),
    }


def scan(html: str) -> dict[str, Any]:
    tree = UiTree.from_html(html)
    registry = SurfaceRegistry(tree, RecordingFactory())
    stats = registry.reconcile()
    return {
        "stats": {
            "created": stats.created,
            "refreshed": stats.refreshed,
            "destroyed": stats.destroyed,
            "skipped": stats.skipped,
        },
        "hosts": [describe_host(registry, host) for host in registry.hosts()],
    }


def summarize_transactions(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for i, message in enumerate(messages):
        if not is_transaction_message(message):
            continue
        summary = interpret(message)
        out.append({
            "line": i + 1,
            "root_id": summary.root_id,
            "operations": len(summary.operations),
            "actions": sorted({op.action for op in summary.operations}),
            "has_heading_change": summary.has_heading_change,
        })
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--html", type=Path, required=True, help="Saved UI snapshot (HTML)")
    parser.add_argument(
        "--transactions",
        type=Path,
        default=None,
        help="Optional JSONL file of recorded transaction-log messages",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.html.exists():
        log.error("snapshot not found: %s", args.html)
        return 2

    result = scan(args.html.read_text(encoding="utf-8"))
    log.info("%d hosts bound", len(result["hosts"]))

    if args.transactions is not None:
        result["transactions"] = summarize_transactions(load_jsonl(args.transactions))

    dump_json(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
