"""Outline engine: wires host notifications to the registry.

Input channels:
    - UI-tree mutation batches (``on_mutations``), clicks and key presses;
    - host bus events: surface switched/loaded, block updated, transaction log.

Flow: mutations go through the signal classifier into the coalescer, whose
released actions run a reconciliation pass or a targeted search/history
preview check. Bus events refresh specific hosts directly through
``SurfaceRegistry.update_for_host``.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from bs4.element import Tag

from toc_engine.coalescer import ChangeCoalescer, ImmediateTrailing, Scheduler, Timing
from toc_engine.config import DEFAULT_CONFIG, TocConfig
from toc_engine.dom_utils import (
    HISTORY_LIST_MATCH,
    SEARCH_PREVIEW,
    closest,
    history_preview_hosts,
    is_search_dialog_open,
    is_search_host,
    search_preview_hosts,
    should_show_outline,
)
from toc_engine.events import (
    BLOCK_UPDATED,
    SURFACE_LOADED,
    SURFACE_SWITCHED,
    TRANSACTION_LOG,
    EventBusLike,
    Handler,
)
from toc_engine.identity import doc_key_for_host, resolve_doc_id
from toc_engine.registry import ReconcileStats, SurfaceRegistry
from toc_engine.signals import MutationRecord, SignalFlags, classify_batch
from toc_engine.surface import EditorState, UiTree
from toc_engine.transactions import (
    TransactionSummary,
    interpret,
    is_transaction_message,
    removed_or_moved_ids,
)
from toc_engine.widget import RefreshContext, WidgetFactory, WidgetHandle

log = logging.getLogger(__name__)

SEARCH_NAV_KEYS = frozenset({"ArrowUp", "ArrowDown", "PageUp", "PageDown"})


class OutlineEngine:
    def __init__(
        self,
        tree: UiTree,
        bus: EventBusLike,
        factory: WidgetFactory,
        scheduler: Scheduler,
        *,
        config: TocConfig = DEFAULT_CONFIG,
        timing: Timing | None = None,
    ) -> None:
        self.tree = tree
        self.bus = bus
        self.config = config
        self.registry = SurfaceRegistry(tree, factory, config)
        self._scheduler = scheduler
        self._timing = timing or Timing()
        self._handlers: dict[str, Handler] = {
            SURFACE_SWITCHED: self.on_surface_switched,
            SURFACE_LOADED: self.on_surface_loaded,
            BLOCK_UPDATED: self.on_block_updated,
            TRANSACTION_LOG: self.on_transaction_log,
        }
        self._result_lists: dict[int, Tag] = {}
        self._pending_switch: EditorState | None = None
        self._loaded = False
        self.coalescer, self._switch = self._new_coalescer()

    def _new_coalescer(self) -> tuple[ChangeCoalescer, ImmediateTrailing]:
        coalescer = ChangeCoalescer(
            self._scheduler,
            on_rescan=self.reconcile,
            on_search=self.check_search_previews,
            on_history=self.check_history_previews,
            timing=self._timing,
        )
        switch = coalescer.immediate_trailing(self._timing.switch_retry, self._refresh_switched)
        return coalescer, switch

    @property
    def loaded(self) -> bool:
        return self._loaded

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def load(self) -> None:
        """Subscribe, scan once and start the periodic safety net."""
        if self._loaded:
            return
        if self.coalescer.closed:
            self.coalescer, self._switch = self._new_coalescer()
        for name, handler in self._handlers.items():
            self.bus.off(name, handler)
            self.bus.on(name, handler)
        self._loaded = True
        for result_list in self.tree.select(".search__list"):
            self.attach_result_list(result_list)
        self.reconcile()
        self.coalescer.start_periodic_check()
        log.info("outline engine loaded (%d widgets)", len(self.registry))

    def unload(self) -> None:
        """Unsubscribe, cancel every timer and destroy every widget."""
        for name, handler in self._handlers.items():
            self.bus.off(name, handler)
        self._result_lists.clear()
        self._pending_switch = None
        self.coalescer.teardown()
        self.registry.destroy_all()
        self._loaded = False
        log.info("outline engine unloaded")

    # -----------------------------------------------------------------------
    # Ambient input channels
    # -----------------------------------------------------------------------

    def on_mutations(self, records: Iterable[MutationRecord]) -> SignalFlags:
        flags = classify_batch(records)
        if not self._loaded:
            return flags
        for result_list in flags.result_lists:
            self.attach_result_list(result_list)
        if flags.rescan:
            self.coalescer.request_rescan()
        if flags.search_changed:
            self.coalescer.request_search_update()
        if flags.history_changed:
            self.coalescer.request_history_update()
        return flags

    def attach_result_list(self, result_list: Tag) -> None:
        # Keyed by identity, so re-attaching replaces rather than duplicates.
        self._prune_result_lists()
        self._result_lists[id(result_list)] = result_list

    def _prune_result_lists(self) -> None:
        # A listener dies with its list once the dialog is closed.
        for key, attached in list(self._result_lists.items()):
            if not self.tree.contains(attached):
                del self._result_lists[key]

    @property
    def result_listener_count(self) -> int:
        return len(self._result_lists)

    def has_result_listener(self, result_list: Tag) -> bool:
        attached = self._result_lists.get(id(result_list))
        return attached is result_list

    def on_click(self, target: Tag) -> None:
        if not self._loaded:
            return
        result_list = closest(target, ".search__list")
        if (
            result_list is not None
            and self.has_result_listener(result_list)
            and closest(target, ".b3-list-item") is not None
        ):
            self.coalescer.request_search_update()
        if closest(target, SEARCH_PREVIEW) is not None:
            self.coalescer.request_search_update()
        if closest(target, HISTORY_LIST_MATCH) is not None:
            self.coalescer.request_history_update()

    def on_keydown(self, key: str) -> None:
        if self._loaded and key in SEARCH_NAV_KEYS and is_search_dialog_open(self.tree):
            self.coalescer.request_search_update()

    # -----------------------------------------------------------------------
    # Coalesced actions
    # -----------------------------------------------------------------------

    def reconcile(self) -> ReconcileStats:
        stats = self.registry.reconcile()
        self._prune_result_lists()
        return stats

    def check_search_previews(self) -> None:
        self._prune_result_lists()
        for host in search_preview_hosts(self.tree):
            editor = self.tree.editor_state(host)
            doc_id = resolve_doc_id(host, editor)
            if not doc_id:
                continue
            self.registry.update_for_host(host, doc_id, RefreshContext(host, editor))

    def check_history_previews(self) -> None:
        for host in history_preview_hosts(self.tree):
            editor = self.tree.editor_state(host)
            doc_id = resolve_doc_id(host, editor, history_sentinel=True)
            if not doc_id:
                continue
            self.registry.update_for_host(host, doc_id, RefreshContext(host, editor))

    # -----------------------------------------------------------------------
    # Bus handlers
    # -----------------------------------------------------------------------

    def on_surface_loaded(self, editor: EditorState) -> None:
        if not self._loaded:
            return
        host = editor.element
        self.tree.attach_editor(editor)
        if not should_show_outline(host):
            return
        doc_id = resolve_doc_id(host, editor, history_sentinel=True)
        if not doc_id:
            return
        if host not in self.registry:
            self.registry.create_widget(host, doc_id)
            return
        if self.registry.cached_key(host) == doc_key_for_host(host, doc_id):
            return
        self.registry.update_for_host(host, doc_id, RefreshContext(host, editor), force=True)
        if is_search_host(host):
            # Search previews finish loading after the event; look again.
            self.coalescer.schedule_retry(
                self._timing.search_preview_retry,
                lambda: self._retry_loaded(editor),
            )

    def _retry_loaded(self, editor: EditorState) -> None:
        host = editor.element
        if not self.tree.contains(host):
            return
        doc_id = resolve_doc_id(host, editor)
        if doc_id:
            self.registry.update_for_host(host, doc_id, RefreshContext(host, editor), force=True)

    def on_surface_switched(self, editor: EditorState) -> None:
        if not self._loaded:
            return
        self.tree.attach_editor(editor)
        self._pending_switch = editor
        self._switch()

    def _refresh_switched(self) -> None:
        editor = self._pending_switch
        if editor is None:
            return
        host = editor.element
        if not should_show_outline(host):
            return
        doc_id = resolve_doc_id(host, editor)
        if not doc_id:
            return
        # Forced: leaving a zoomed view keeps the key stable for a moment.
        self.registry.update_for_host(host, doc_id, RefreshContext(host, editor), force=True)

    def on_block_updated(self, payload: Mapping[str, Any] | None) -> None:
        block_id = payload.get("id") if isinstance(payload, Mapping) else None
        for host, _ in self.registry.items():
            doc_id = self.registry.resolve(host)
            if not doc_id:
                continue
            if block_id and host.find(attrs={"data-node-id": block_id}) is None:
                continue
            self.registry.update_for_host(host, doc_id, force=True)

    def on_transaction_log(self, message: Mapping[str, Any] | None) -> None:
        if message is None or not is_transaction_message(message):
            return
        summary = interpret(message)
        for host, widget in self.registry.items():
            doc_id = self.registry.resolve(host)
            if not doc_id:
                continue
            editor = self.tree.editor_state(host)
            file_root = editor.root_id if editor is not None and editor.root_id else doc_id
            if summary.root_id and summary.root_id != file_root:
                continue
            if summary.has_heading_change or _touches_heading(host, widget, summary):
                self.registry.update_for_host(host, doc_id, force=True)

    # -----------------------------------------------------------------------
    # Misc
    # -----------------------------------------------------------------------

    def toggle_visibility(self) -> bool:
        visible = not self.registry.visible
        self.registry.set_visible(visible)
        return visible


def _touches_heading(host: Tag, widget: WidgetHandle, summary: TransactionSummary) -> bool:
    """True if a deleted or moved block was a heading in the widget or the DOM."""
    has_heading = getattr(widget, "has_heading", None)
    for block_id in removed_or_moved_ids(summary):
        if callable(has_heading) and has_heading(block_id):
            return True
        node = host.find(attrs={"data-node-id": block_id})
        if node is not None and node.get("data-type") == "NodeHeading":
            return True
    return False
