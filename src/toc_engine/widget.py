"""Outline widget contract and a non-visual reference implementation.

The registry only ever talks to widgets through ``WidgetFactory.create`` and
the ``WidgetHandle`` methods; rendering belongs to the host.
"""
from __future__ import annotations

import asyncio
import logging
import re
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from bs4.element import Tag

from toc_engine.client import Heading, OutlineClient, flatten_outline
from toc_engine.dom_utils import HEADING_NODES, get_attr, is_history_host, query, query_all
from toc_engine.identity import HISTORY_SENTINEL
from toc_engine.surface import EditorState

log = logging.getLogger(__name__)

_TAG_DEPTH_RE = re.compile(r"^h([1-6])$")


@dataclass(frozen=True, slots=True)
class RefreshContext:
    element: Tag
    editor: EditorState | None = None


@dataclass(frozen=True, slots=True)
class WidgetOptions:
    target: Tag
    dock_side: str = "right"
    follow_focus: bool = True
    adaptive_height: bool = True
    mini_width: int = 32
    toolbar: tuple[str, ...] = field(default=())


class WidgetHandle(Protocol):
    def refresh(self, doc_id: str, context: RefreshContext) -> None: ...

    def set_visible(self, visible: bool) -> None: ...

    def destroy(self) -> None: ...


class WidgetFactory(Protocol):
    def create(self, container: Tag, options: WidgetOptions) -> WidgetHandle: ...


# ---------------------------------------------------------------------------
# Reference widget
# ---------------------------------------------------------------------------


def headings_from_dom(element: Tag) -> list[Heading]:
    """Headings rendered inside a surface, for snapshots the API cannot serve."""
    root = query(element, ".protyle-content")
    if root is None:
        root = element
    out: list[Heading] = []
    for node in query_all(root, HEADING_NODES):
        subtype = get_attr(node, "data-subtype") or None
        m = _TAG_DEPTH_RE.match(subtype or node.name or "")
        out.append(Heading(
            id=get_attr(node, "data-node-id", "data-id", "data-oid"),
            content=node.get_text(" ", strip=True),
            depth=int(m.group(1)) if m else 1,
            subtype=subtype,
        ))
    return out


class OutlineWidget:
    """Holds the flattened outline for one surface.

    ``refresh`` returns immediately when an event loop is supplied: the
    fetch runs in the loop's default executor and the result is applied
    back on the loop thread. Results from superseded refreshes are dropped.
    """

    def __init__(
        self,
        container: Tag,
        options: WidgetOptions,
        *,
        fetch: Callable[[str, bool], list[dict[str, Any]]],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.container = container
        self.options = options
        self.headings: list[Heading] = []
        self.doc_id: str | None = None
        self.visible = True
        self.destroyed = False
        self.refresh_count = 0
        self._fetch = fetch
        self._loop = loop
        self._generation = 0

    def refresh(self, doc_id: str, context: RefreshContext) -> None:
        if self.destroyed:
            return
        self.refresh_count += 1
        self._generation += 1
        generation = self._generation
        self.doc_id = doc_id

        if doc_id == HISTORY_SENTINEL or is_history_host(context.element):
            self.headings = headings_from_dom(context.element)
            return

        preview = context.editor is None
        if self._loop is None:
            self._apply(generation, self._safe_fetch(doc_id, preview))
            return
        future = self._loop.run_in_executor(None, self._safe_fetch, doc_id, preview)
        future.add_done_callback(lambda f: self._on_fetched(generation, f))

    def _safe_fetch(self, doc_id: str, preview: bool) -> list[dict[str, Any]]:
        try:
            return self._fetch(doc_id, preview)
        except Exception:  # any fetch failure means "no outline"
            log.warning("outline fetch for %s failed", doc_id, exc_info=True)
            return []

    def _on_fetched(self, generation: int, future: asyncio.Future[Any] | Future[Any]) -> None:
        if future.cancelled():
            return
        self._apply(generation, future.result())

    def _apply(self, generation: int, items: list[dict[str, Any]]) -> None:
        if self.destroyed or generation != self._generation:
            return
        self.headings = flatten_outline(items)

    def has_heading(self, block_id: str | None) -> bool:
        return bool(block_id) and any(h.id == block_id for h in self.headings)

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def destroy(self) -> None:
        self.destroyed = True
        self.headings = []


class OutlineWidgetFactory:
    def __init__(
        self,
        client: OutlineClient,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._client = client
        self._loop = loop

    def _fetch(self, doc_id: str, preview: bool) -> list[dict[str, Any]]:
        return self._client.get_doc_outline(doc_id, preview=preview)

    def create(self, container: Tag, options: WidgetOptions) -> OutlineWidget:
        return OutlineWidget(container, options, fetch=self._fetch, loop=self._loop)
