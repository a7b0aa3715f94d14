"""Document identity resolution for outline surfaces.

No single signal says which document a surface shows. Normal editors carry a
live editor-state object, search previews only reliably expose the focused
result item, and history previews may expose nothing but a storage path on
the selected snapshot. Resolution is therefore an ordered chain of small
heuristics; the first one that yields an id wins.

Resolution order:
    1. Editor state: focused block id in a zoomed view, else the root id.
    2. Zoomed view without editor state: last breadcrumb entry.
    3. Structural attributes on content, write-area, doc root and title.
    4. First breadcrumb entry carrying an id.
    5. Search context: active (or first) result item.
    6. History context: active (or first) snapshot item's path, then its
       ids, then container paths, any descendant path, the title id.

History surfaces get a richer key (snapshot path, loading flag, heading
fingerprint) because one document id covers many snapshots.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeAlias

from bs4.element import Tag

from toc_engine.dom_utils import (
    HEADING_NODES,
    HISTORY_ACTIVE_ITEM,
    HISTORY_LIST,
    HISTORY_PANEL,
    SEARCH_ACTIVE_ITEM,
    SEARCH_ANY_ITEM,
    SEARCH_CONTAINER,
    closest,
    extract_doc_id_from_path,
    get_attr,
    has_class,
    is_history_host,
    query,
    query_all,
)
from toc_engine.surface import EditorState

log = logging.getLogger(__name__)

HISTORY_SENTINEL = "history"

DocumentKey: TypeAlias = str
Heuristic: TypeAlias = Callable[[Tag, EditorState | None], str | None]

_ID_ATTRS = ("data-node-id", "data-root-id", "data-doc-id", "data-id", "data-oid")
_TITLE_ATTRS = ("data-node-id", "data-doc-id", "data-id")


# ---------------------------------------------------------------------------
# Focus detection
# ---------------------------------------------------------------------------


def is_focus_mode_via_dom(host: Tag) -> bool:
    """True if the "exit focus" breadcrumb icon is present and not hidden."""
    exit_btn = query(host, '.protyle-breadcrumb__icon[data-type="exit-focus"]')
    return exit_btn is not None and not has_class(exit_btn, "fn__none")


def _breadcrumb_items(host: Tag) -> list[Tag]:
    breadcrumb = query(host, ".protyle-breadcrumb")
    if breadcrumb is None:
        return []
    return query_all(breadcrumb, ".protyle-breadcrumb__item")


# ---------------------------------------------------------------------------
# Heuristics (host, editor) -> id | None
# ---------------------------------------------------------------------------


def from_editor_state(host: Tag, editor: EditorState | None) -> str | None:
    if editor is None:
        return None
    # Either signal alone can be stale, so a zoomed view is trusted from both.
    if editor.focused or is_focus_mode_via_dom(host):
        return editor.block_id or None
    return editor.root_id or None


def from_focus_breadcrumb(host: Tag, editor: EditorState | None) -> str | None:
    if not is_focus_mode_via_dom(host):
        return None
    items = _breadcrumb_items(host)
    if not items:
        return None
    return get_attr(items[-1], "data-node-id") or None


def from_structural_attributes(host: Tag, editor: EditorState | None) -> str | None:
    content = query(host, ".protyle-content")
    wysiwyg = query(host, ".protyle-wysiwyg")
    doc_root = query(host, '[data-type="NodeDocument"]')
    title_input = query(host, ".protyle-title__input")
    title_wrapper = query(host, ".protyle-title")
    return (
        get_attr(content, *_ID_ATTRS)
        or get_attr(wysiwyg, "data-node-id")
        or get_attr(doc_root, "data-node-id", "data-id")
        or get_attr(title_input, *_TITLE_ATTRS)
        or get_attr(title_wrapper, *_TITLE_ATTRS)
        or get_attr(host, *_ID_ATTRS)
        or None
    )


def from_breadcrumb_trail(host: Tag, editor: EditorState | None) -> str | None:
    for item in _breadcrumb_items(host):
        node_id = get_attr(item, "data-node-id")
        if node_id:
            return node_id
    return None


def _search_scope(element: Tag) -> Tag:
    scope = closest(element, SEARCH_CONTAINER)
    return scope if scope is not None else _document_of(element)


def _history_scope(element: Tag) -> Tag:
    scope = closest(element, HISTORY_PANEL)
    return scope if scope is not None else _document_of(element)


def _first(*elements: Tag | None) -> Tag | None:
    # Tags are falsy when childless, so ``a or b`` is not safe here.
    for element in elements:
        if element is not None:
            return element
    return None


def _document_of(element: Tag) -> Tag:
    top = element
    for parent in element.parents:
        top = parent
    return top


def search_context_doc_id(element: Tag) -> str | None:
    """Id of the active (or first) search result around *element*."""
    scope = _search_scope(element)
    item = _first(query(scope, SEARCH_ACTIVE_ITEM), query(scope, SEARCH_ANY_ITEM))
    if item is None:
        return None
    return get_attr(item, "data-root-id", "data-node-id", "data-doc-id") or None


def _active_history_item(element: Tag) -> tuple[Tag, Tag, Tag | None]:
    panel = _history_scope(element)
    list_container = _first(query(panel, HISTORY_LIST), panel)
    item = _first(
        query(list_container, HISTORY_ACTIVE_ITEM),
        query(list_container, ".b3-list-item"),
    )
    return panel, list_container, item


def history_context_doc_id(element: Tag) -> str | None:
    """Id of the snapshot selected in the history list around *element*."""
    panel, list_container, item = _active_history_item(element)
    if item is None:
        return None

    from_path = extract_doc_id_from_path(get_attr(item, "data-path"))
    if from_path:
        return from_path

    item_id = get_attr(item, "data-root-id", "data-node-id", "data-doc-id", "data-id")
    if item_id:
        return item_id

    container_path = (
        get_attr(list_container, "data-path")
        or get_attr(panel, "data-path")
        or get_attr(element, "data-path")
    )
    from_container = extract_doc_id_from_path(container_path)
    if from_container:
        return from_container

    for node in query_all(panel, "[data-path]"):
        from_node = extract_doc_id_from_path(get_attr(node, "data-path"))
        if from_node:
            return from_node

    title_input = query(panel, ".protyle-title__input")
    return get_attr(title_input, *_TITLE_ATTRS) or None


def from_search_context(host: Tag, editor: EditorState | None) -> str | None:
    return search_context_doc_id(host)


def from_history_context(host: Tag, editor: EditorState | None) -> str | None:
    return history_context_doc_id(host)


HEURISTICS: tuple[Heuristic, ...] = (
    from_editor_state,
    from_focus_breadcrumb,
    from_structural_attributes,
    from_breadcrumb_trail,
    from_search_context,
    from_history_context,
)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def resolve_doc_id(
    host: Tag,
    editor: EditorState | None = None,
    *,
    history_sentinel: bool = False,
) -> str | None:
    """Resolve the document (or focused block) id shown by *host*.

    Returns ``None`` when nothing resolves. With *history_sentinel*, a
    history host that resolves nothing yields ``"history"`` so a widget can
    still be bound and refined later.
    """
    for heuristic in HEURISTICS:
        try:
            doc_id = heuristic(host, editor)
        except Exception:  # a broken heuristic must not stop the chain
            log.debug("heuristic %s failed", heuristic.__name__, exc_info=True)
            continue
        if doc_id:
            return doc_id
    if history_sentinel and is_history_host(host):
        return HISTORY_SENTINEL
    return None


def history_snapshot_key(element: Tag, doc_id: str) -> str:
    base = doc_id or HISTORY_SENTINEL
    _, _, item = _active_history_item(element)
    path = get_attr(item, "data-path")
    return f"{base}|{path}" if path else base


def history_content_signature(element: Tag) -> str:
    """Cheap fingerprint: heading count plus the first heading's id.

    Text edits to a non-first heading at constant count are not seen.
    """
    content_root = _first(query(element, ".protyle-content"), element)
    headings = query_all(content_root, HEADING_NODES)
    if not headings:
        return "c0"
    first_id = get_attr(headings[0], "data-node-id", "data-id", "data-oid")
    return f"c{len(headings)}:{first_id}"


def doc_key_for_host(element: Tag, doc_id: str) -> DocumentKey:
    if not doc_id:
        return ""
    if is_history_host(element):
        snapshot = history_snapshot_key(element, doc_id)
        loading = get_attr(element, "data-loading")
        signature = history_content_signature(element)
        return f"{snapshot}|{loading}|{signature}"
    return doc_id


def resolve(host: Tag, editor: EditorState | None = None) -> DocumentKey | None:
    """Full identity contract: the host's ``DocumentKey`` or ``None``."""
    doc_id = resolve_doc_id(host, editor, history_sentinel=True)
    if doc_id is None:
        return None
    return doc_key_for_host(host, doc_id)
