"""Live host UI tree and the editor-state objects attached to its surfaces.

The host owns the tree. The engine only reads it, asks whether a surface is
still reachable from the root, and mounts one container tag per widget.

``bs4`` tags compare and hash by content, so two empty editors would collide
as dict keys. Every identity-keyed table here (and in the registry) keys on
``id(tag)`` and re-checks ``is`` before trusting a hit.
"""
from __future__ import annotations

from dataclasses import dataclass

import soupsieve as sv
from bs4 import BeautifulSoup
from bs4.element import Tag


@dataclass(slots=True)
class EditorState:
    """Live editor-state object the host attaches to an editable surface.

    ``show_all`` is ``False`` while the editor is zoomed into a single block
    (focused sub-view); ``block_id`` is then the focused block. ``root_id`` is
    always the document root.
    """

    element: Tag
    block_id: str = ""
    root_id: str = ""
    show_all: bool | None = None

    @property
    def focused(self) -> bool:
        return self.show_all is False


class UiTree:
    """Read-mostly view of the host's UI document."""

    def __init__(self, root: BeautifulSoup) -> None:
        self._root = root
        self._editors: dict[int, EditorState] = {}

    @classmethod
    def from_html(cls, html: str) -> UiTree:
        return cls(BeautifulSoup(html, "html.parser"))

    @property
    def root(self) -> BeautifulSoup:
        return self._root

    # -- editor-state attachments ------------------------------------------

    def attach_editor(self, state: EditorState) -> None:
        self._editors[id(state.element)] = state

    def detach_editor(self, element: Tag) -> None:
        state = self._editors.get(id(element))
        if state is not None and state.element is element:
            del self._editors[id(element)]

    def editor_state(self, element: Tag) -> EditorState | None:
        state = self._editors.get(id(element))
        if state is None or state.element is not element:
            return None
        return state

    # -- queries -----------------------------------------------------------

    def contains(self, element: Tag) -> bool:
        """True if *element* is still reachable from the root."""
        if element is self._root:
            return True
        return any(parent is self._root for parent in element.parents)

    def select(self, selector: str | sv.SoupSieve) -> list[Tag]:
        if isinstance(selector, sv.SoupSieve):
            return list(selector.select(self._root))
        return list(sv.select(selector, self._root))

    def select_one(self, selector: str | sv.SoupSieve) -> Tag | None:
        if isinstance(selector, sv.SoupSieve):
            return selector.select_one(self._root)
        return sv.select_one(selector, self._root)

    # -- mutation ----------------------------------------------------------

    def mount_container(self, host: Tag, class_name: str) -> Tag:
        """Append a fresh ``div.<class_name>`` to *host* and return it."""
        container = self._root.new_tag("div", attrs={"class": class_name})
        host.append(container)
        return container
