"""Classification of raw UI-tree change notifications.

The host reports every structural and attribute change in its UI. Almost all
of them are irrelevant to outline widgets. ``classify`` sorts one record into
the three concerns the coalescer tracks (surface population, search
previews, history previews) and reports newly appeared result lists that
need a click listener. It never acts on anything itself.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

from bs4.element import PageElement, Tag

from toc_engine.dom_utils import (
    has_class,
    is_breadcrumb_element,
    is_history_attribute_changed,
    is_history_list_item,
    is_history_related_element,
    is_protyle_related_element,
    is_search_attribute_changed,
    is_search_result_item,
)

OBSERVED_ATTRIBUTES: tuple[str, ...] = ("class", "data-loading", "data-node-id", "data-root-id")


@dataclass(frozen=True, slots=True)
class MutationRecord:
    """One raw change notification, shaped like a DOM mutation record."""

    kind: Literal["childList", "attributes"]
    target: Tag
    added_nodes: tuple[PageElement, ...] = ()
    removed_nodes: tuple[PageElement, ...] = ()
    attribute_name: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in ("childList", "attributes"):
            raise ValueError(f"unknown mutation kind: {self.kind!r}")


@dataclass(frozen=True, slots=True)
class SignalFlags:
    rescan: bool = False
    search_changed: bool = False
    history_changed: bool = False
    result_lists: tuple[Tag, ...] = field(default=())

    @property
    def attach_result_listeners(self) -> bool:
        return bool(self.result_lists)

    @property
    def relevant(self) -> bool:
        return self.rescan or self.search_changed or self.history_changed

    def merge(self, other: SignalFlags) -> SignalFlags:
        return SignalFlags(
            rescan=self.rescan or other.rescan,
            search_changed=self.search_changed or other.search_changed,
            history_changed=self.history_changed or other.history_changed,
            result_lists=self.result_lists + other.result_lists,
        )


IRRELEVANT = SignalFlags()


def _classify_child_list(record: MutationRecord) -> SignalFlags:
    rescan = is_breadcrumb_element(record.target)
    search = False
    history = False
    result_lists: list[Tag] = []

    for node in record.added_nodes:
        if not isinstance(node, Tag):
            continue
        if is_protyle_related_element(node):
            rescan = True
        if has_class(node, "search__list"):
            result_lists.append(node)
            search = True
        if is_search_result_item(node):
            search = True
        if is_history_related_element(node):
            rescan = True
            history = True
        if is_history_list_item(node):
            rescan = True
            history = True

    for node in record.removed_nodes:
        if not isinstance(node, Tag):
            continue
        if is_protyle_related_element(node):
            rescan = True
        if has_class(node, "search__list") or is_search_result_item(node):
            search = True
        if is_history_related_element(node):
            rescan = True
            history = True

    return SignalFlags(
        rescan=rescan,
        search_changed=search,
        history_changed=history,
        result_lists=tuple(result_lists),
    )


def _classify_attributes(record: MutationRecord) -> SignalFlags:
    target = record.target
    name = record.attribute_name
    if name not in OBSERVED_ATTRIBUTES:
        return IRRELEVANT
    rescan = False
    search = False
    history = False

    if is_search_attribute_changed(target, name):
        search = rescan = True
    if is_history_attribute_changed(target, name):
        history = rescan = True
    if has_class(target, "protyle") and name == "data-loading":
        search = rescan = True

    return SignalFlags(rescan=rescan, search_changed=search, history_changed=history)


def classify(record: MutationRecord) -> SignalFlags:
    """Sort one change notification into the concerns it may affect."""
    if record.kind == "childList":
        return _classify_child_list(record)
    return _classify_attributes(record)


def classify_batch(records: Iterable[MutationRecord]) -> SignalFlags:
    flags = IRRELEVANT
    for record in records:
        flags = flags.merge(classify(record))
    return flags
