"""Selector constants and predicates over the host's UI tree.

Everything here is a pure read of tag names, classes and attributes. The
host's class vocabulary (``protyle``, ``b3-list-item``, ``history__*`` ...)
is matched verbatim.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Iterable

import soupsieve as sv
from bs4.element import Tag

from toc_engine.surface import UiTree

# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------

SEARCH_DIALOG = ".b3-dialog--open[data-key='dialog-globalsearch']"
SEARCH_CONTAINER = sv.compile(f"{SEARCH_DIALOG}, .search")
SEARCH_ACTIVE_ITEM = ".search__list .b3-list-item--focus"
SEARCH_ANY_ITEM = ".search__list .b3-list-item"
SEARCH_PREVIEW = sv.compile(".search__preview, .search__doc")

HISTORY_PANEL = sv.compile(".history__panel, .history, .b3-dialog")
HISTORY_LIST = ".history__side, .history__list, .history__repo"
HISTORY_LIST_MATCH = sv.compile(HISTORY_LIST)
HISTORY_ACTIVE_ITEM = ".b3-list-item--focus, .b3-list-item--selected, .b3-list-item--current"
HISTORY_DIALOGS = sv.compile(
    ".b3-dialog--open[data-key='dialog-history'], "
    ".b3-dialog--open[data-key='dialog-historydoc']"
)

CANDIDATE_HOSTS = sv.compile(
    ".protyle, .search__preview, .search__doc, .history__text, "
    ".history__text .protyle, [data-type='docPanel'].history__text"
)
SEARCH_PREVIEW_CANDIDATES = sv.compile("#searchPreview, .search__preview, .search__doc")
HISTORY_PREVIEW_CANDIDATES = sv.compile(
    "#historyPreview, .history__text, .history__text.protyle, .history__text .protyle, "
    "[data-type='docPanel'].history__text, "
    ".b3-dialog--open[data-key='dialog-history'] .protyle, "
    ".b3-dialog--open[data-key='dialog-historydoc'] .protyle, "
    ".b3-dialog--open[data-key='dialog-history'] [data-type='docPanel'], "
    ".b3-dialog--open[data-key='dialog-historydoc'] [data-type='docPanel']"
)

BACKLINK_AREA = sv.compile(
    ".sy__backlink, .backlinkList, .backlinkMList, [data-defid], "
    "[data-ismention], .backlink-panel"
)
EMBED_AREA = sv.compile(".protyle-wysiwyg__embed")
BREADCRUMB = sv.compile(".protyle-breadcrumb")

HEADING_NODES = '[data-type="NodeHeading"], h1, h2, h3, h4, h5, h6'

_PATH_FILE_RE = re.compile(r"(?:^|[\\/])(\d{14}-[a-z0-9]{7})\.(?:syx|sy)$", re.IGNORECASE)
_PATH_ANY_RE = re.compile(r"\d{14}-[a-z0-9]{7}", re.IGNORECASE)


class SurfaceKind(Enum):
    EDITOR = "editor"
    SEARCH = "search"
    HISTORY = "history"


# ---------------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------------


def has_class(element: Tag, name: str) -> bool:
    """Class membership that tolerates string-valued ``class`` attributes."""
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return name in classes


def get_attr(element: Tag | None, *names: str) -> str:
    """First non-empty value among *names* on *element*, else ``""``."""
    if element is None:
        return ""
    for name in names:
        value = element.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        if value:
            return str(value)
    return ""


def closest(element: Tag, selector: str | sv.SoupSieve) -> Tag | None:
    """Nearest ancestor-or-self matching *selector* (DOM ``closest``)."""
    if isinstance(selector, sv.SoupSieve):
        return selector.closest(element)
    return sv.closest(selector, element)


def query(element: Tag, selector: str | sv.SoupSieve) -> Tag | None:
    if isinstance(selector, sv.SoupSieve):
        return selector.select_one(element)
    return sv.select_one(selector, element)


def query_all(element: Tag, selector: str | sv.SoupSieve) -> list[Tag]:
    if isinstance(selector, sv.SoupSieve):
        return list(selector.select(element))
    return list(sv.select(selector, element))


def unique_by_identity(elements: Iterable[Tag]) -> list[Tag]:
    """Drop repeated tags (by identity), keeping first-seen order."""
    seen: set[int] = set()
    out: list[Tag] = []
    for el in elements:
        if id(el) in seen:
            continue
        seen.add(id(el))
        out.append(el)
    return out


# ---------------------------------------------------------------------------
# Host derivation and enumeration
# ---------------------------------------------------------------------------


def get_host_element(candidate: Tag) -> Tag | None:
    """Map a candidate sub-tree to the element the outline widget binds to."""
    if has_class(candidate, "protyle"):
        return candidate
    inner = query(candidate, ".protyle")
    if inner is not None:
        return inner
    doc_panel = query(candidate, "[data-type='docPanel']")
    if doc_panel is not None and query(doc_panel, ".protyle-content") is not None:
        return doc_panel
    if query(candidate, ".protyle-content") is not None:
        return candidate
    return None


def has_content_region(host: Tag) -> bool:
    return (
        query(host, ".protyle-content") is not None
        or query(host, ".protyle-wysiwyg") is not None
    )


def _hosts_from(candidates: Iterable[Tag]) -> list[Tag]:
    hosts: list[Tag] = []
    for candidate in candidates:
        host = get_host_element(candidate)
        if host is not None:
            hosts.append(host)
    return unique_by_identity(hosts)


def candidate_hosts(tree: UiTree) -> list[Tag]:
    """Hosts eligible for a widget: deduplicated, displayable, with content."""
    return [
        host
        for host in _hosts_from(tree.select(CANDIDATE_HOSTS))
        if should_show_outline(host) and has_content_region(host)
    ]


def search_preview_hosts(tree: UiTree) -> list[Tag]:
    return _hosts_from(tree.select(SEARCH_PREVIEW_CANDIDATES))


def history_preview_hosts(tree: UiTree) -> list[Tag]:
    return _hosts_from(tree.select(HISTORY_PREVIEW_CANDIDATES))


# ---------------------------------------------------------------------------
# Surface classification
# ---------------------------------------------------------------------------


def is_history_host(element: Tag) -> bool:
    if has_class(element, "history__text"):
        return True
    if closest(element, ".history__text") is not None:
        return True
    if closest(element, ".history__panel, .history") is not None:
        return True
    return closest(element, HISTORY_DIALOGS) is not None


def is_search_host(element: Tag) -> bool:
    return closest(element, SEARCH_PREVIEW) is not None


def surface_kind(element: Tag) -> SurfaceKind:
    if is_history_host(element):
        return SurfaceKind.HISTORY
    if is_search_host(element):
        return SurfaceKind.SEARCH
    return SurfaceKind.EDITOR


def is_backlink_area(element: Tag) -> bool:
    """Backlink panels, including plugin-rendered ones (``data-defid`` ...)."""
    return closest(element, BACKLINK_AREA) is not None


def should_show_outline(element: Tag) -> bool:
    if is_backlink_area(element):
        return False
    return closest(element, EMBED_AREA) is None


def is_breadcrumb_element(element: Tag) -> bool:
    return (
        has_class(element, "protyle-breadcrumb")
        or has_class(element, "protyle-breadcrumb__bar")
        or closest(element, BREADCRUMB) is not None
    )


def is_protyle_related_element(element: Tag) -> bool:
    if is_backlink_area(element):
        return False
    return (
        has_class(element, "protyle")
        or query(element, ".protyle") is not None
        or has_class(element, "dialog-globalsearch")
        or has_class(element, "b3-dialog")
    )


def is_search_result_item(element: Tag) -> bool:
    return has_class(element, "b3-list-item") and closest(element, ".search__list") is not None


def is_history_related_element(element: Tag) -> bool:
    return (
        has_class(element, "history__panel")
        or has_class(element, "history__side")
        or has_class(element, "history__list")
        or has_class(element, "history__text")
        or query(element, ".history__side") is not None
        or query(element, ".history__text") is not None
    )


def is_history_list_item(element: Tag) -> bool:
    return has_class(element, "b3-list-item") and closest(element, HISTORY_LIST_MATCH) is not None


def is_history_panel_element(element: Tag) -> bool:
    return any(
        has_class(element, name)
        for name in ("history__side", "history__list", "history__text", "history__panel")
    )


def is_search_attribute_changed(element: Tag, attribute_name: str | None) -> bool:
    if (
        has_class(element, "b3-list-item")
        and attribute_name == "class"
        and closest(element, ".search__list") is not None
    ):
        return True
    if any(
        has_class(element, name)
        for name in ("protyle-breadcrumb__item", "protyle-breadcrumb", "protyle-breadcrumb__icon")
    ):
        return True
    return any(
        has_class(element, name)
        for name in ("protyle-content", "search__preview", "search__doc")
    )


def is_history_attribute_changed(element: Tag, attribute_name: str | None) -> bool:
    if (
        has_class(element, "b3-list-item")
        and attribute_name == "class"
        and closest(element, HISTORY_LIST_MATCH) is not None
    ):
        return True
    return is_history_panel_element(element)


def is_search_dialog_open(tree: UiTree) -> bool:
    return tree.select_one(SEARCH_DIALOG) is not None


# ---------------------------------------------------------------------------
# Path parsing
# ---------------------------------------------------------------------------


def extract_doc_id_from_path(path: str | None) -> str:
    """Pull a document id (``YYYYMMDDhhmmss-xxxxxxx``) out of a storage path.

    Prefers the file-name form ``.../<id>.sy`` (or ``.syx``); otherwise takes
    the last id-shaped run anywhere in the path.
    """
    if not path:
        return ""
    text = str(path)
    match = _PATH_FILE_RE.search(text)
    if match:
        return match.group(1)
    found = _PATH_ANY_RE.findall(text)
    return found[-1] if found else ""
