"""Surface registry: one outline widget per live surface.

The registry is the only owner of widget instances and of the cached
``DocumentKey`` per host. ``reconcile`` diffs the current candidate hosts
against the registry; ``update_for_host`` is the single refresh path used by
reconciliation and by every targeted update.

Both tables key on ``id(host)`` and every lookup re-checks identity, since
``bs4`` tags hash by content.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from bs4.element import Tag

from toc_engine.config import DEFAULT_CONFIG, TocConfig
from toc_engine.dom_utils import candidate_hosts
from toc_engine.identity import DocumentKey, doc_key_for_host, resolve_doc_id
from toc_engine.surface import UiTree
from toc_engine.widget import RefreshContext, WidgetFactory, WidgetHandle, WidgetOptions

log = logging.getLogger(__name__)

CONTAINER_CLASS = "floating-toc-container"


@dataclass(slots=True)
class _Entry:
    host: Tag
    container: Tag
    widget: WidgetHandle
    doc_key: DocumentKey


@dataclass(frozen=True, slots=True)
class ReconcileStats:
    created: int = 0
    refreshed: int = 0
    destroyed: int = 0
    skipped: int = 0


class SurfaceRegistry:
    def __init__(
        self,
        tree: UiTree,
        factory: WidgetFactory,
        config: TocConfig = DEFAULT_CONFIG,
    ) -> None:
        self._tree = tree
        self._factory = factory
        self._config = config
        self._entries: dict[int, _Entry] = {}
        self._visible = True

    # -- lookups -----------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, host: Tag) -> _Entry | None:
        entry = self._entries.get(id(host))
        if entry is None or entry.host is not host:
            return None
        return entry

    def __contains__(self, host: Tag) -> bool:
        return self._entry(host) is not None

    def hosts(self) -> list[Tag]:
        return [entry.host for entry in self._entries.values()]

    def items(self) -> Iterator[tuple[Tag, WidgetHandle]]:
        for entry in list(self._entries.values()):
            yield entry.host, entry.widget

    def widget_for(self, host: Tag) -> WidgetHandle | None:
        entry = self._entry(host)
        return entry.widget if entry is not None else None

    def cached_key(self, host: Tag) -> DocumentKey | None:
        entry = self._entry(host)
        return entry.doc_key if entry is not None else None

    @property
    def visible(self) -> bool:
        return self._visible

    def context_for(self, host: Tag) -> RefreshContext:
        return RefreshContext(element=host, editor=self._tree.editor_state(host))

    def resolve(self, host: Tag) -> str | None:
        """Resolve *host*'s id, with the history sentinel for history hosts."""
        return resolve_doc_id(host, self._tree.editor_state(host), history_sentinel=True)

    # -- lifecycle ---------------------------------------------------------

    def create_widget(self, host: Tag, doc_id: str) -> WidgetHandle:
        """Bind a widget to *host*. Idempotent: an existing widget is returned."""
        existing = self._entry(host)
        if existing is not None:
            return existing.widget

        cfg = self._config
        container = self._tree.mount_container(host, CONTAINER_CLASS)
        widget = self._factory.create(container, WidgetOptions(
            target=host,
            dock_side=cfg.dock_side,
            follow_focus=cfg.follow_focus,
            adaptive_height=cfg.adaptive_height,
            mini_width=cfg.mini_toc_width,
            toolbar=cfg.toolbar_config,
        ))
        widget.set_visible(self._visible)
        widget.refresh(doc_id, self.context_for(host))
        doc_key = doc_key_for_host(host, doc_id) or doc_id
        self._entries[id(host)] = _Entry(host=host, container=container, widget=widget, doc_key=doc_key)
        log.debug("created widget for %s (key=%s)", doc_id, doc_key)
        return widget

    def update_for_host(
        self,
        host: Tag,
        doc_id: str,
        context: RefreshContext | None = None,
        force: bool = False,
    ) -> bool:
        """Refresh *host*'s widget if its key changed (or always, if *force*).

        Creates the widget when absent. Returns True if a refresh happened.
        """
        doc_key = doc_key_for_host(host, doc_id)
        entry = self._entry(host)
        if entry is None:
            self.create_widget(host, doc_id)
            return True
        if not force and entry.doc_key == doc_key:
            return False
        entry.widget.refresh(doc_id, context or self.context_for(host))
        entry.doc_key = doc_key or doc_id
        return True

    def destroy(self, host: Tag) -> bool:
        entry = self._entry(host)
        if entry is None:
            return False
        del self._entries[id(host)]
        entry.widget.destroy()
        if entry.container.parent is not None:
            entry.container.extract()
        return True

    def destroy_all(self) -> None:
        for host in self.hosts():
            self.destroy(host)

    def set_visible(self, visible: bool) -> None:
        self._visible = visible
        for _, widget in self.items():
            widget.set_visible(visible)

    # -- reconciliation ----------------------------------------------------

    def reconcile(self) -> ReconcileStats:
        """One scan-and-diff pass over the live tree."""
        created = refreshed = destroyed = skipped = 0

        for host in candidate_hosts(self._tree):
            doc_id = self.resolve(host)
            if not doc_id:
                skipped += 1
                continue
            if host not in self:
                self.create_widget(host, doc_id)
                created += 1
            elif self.update_for_host(host, doc_id):
                refreshed += 1

        for host in self.hosts():
            if not self._tree.contains(host):
                self.destroy(host)
                self._tree.detach_editor(host)
                destroyed += 1

        stats = ReconcileStats(created, refreshed, destroyed, skipped)
        if created or refreshed or destroyed:
            log.debug("reconcile: %s", stats)
        return stats

