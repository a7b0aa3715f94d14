"""Shared fixtures: a manual-clock scheduler and a recording widget factory."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import pytest
from bs4 import BeautifulSoup
from bs4.element import Tag

from toc_engine.widget import RefreshContext, WidgetOptions


@dataclass
class FakeHandle:
    when: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic stand-in for an event loop's ``call_later``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[FakeHandle] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(when=self.now + delay, seq=self._seq, callback=callback)
        self._seq += 1
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled and not h.fired)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [
                h for h in self._handles
                if not h.cancelled and not h.fired and h.when <= target + 1e-9
            ]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            handle.fired = True
            self.now = max(self.now, handle.when)
            handle.callback()
        self.now = target


@dataclass
class RecordingWidget:
    container: Tag
    options: WidgetOptions
    refreshes: list[str] = field(default_factory=list)
    contexts: list[RefreshContext] = field(default_factory=list)
    visible: bool | None = None
    destroyed: bool = False
    headings: set[str] = field(default_factory=set)

    def refresh(self, doc_id: str, context: RefreshContext) -> None:
        self.refreshes.append(doc_id)
        self.contexts.append(context)

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def destroy(self) -> None:
        self.destroyed = True

    def has_heading(self, block_id: str | None) -> bool:
        return block_id in self.headings


class RecordingFactory:
    def __init__(self) -> None:
        self.widgets: list[RecordingWidget] = []

    def create(self, container: Tag, options: WidgetOptions) -> RecordingWidget:
        widget = RecordingWidget(container=container, options=options)
        self.widgets.append(widget)
        return widget


def fragment(html: str) -> Tag:
    """Parse *html* and return its first element, detached from any tree."""
    tag = BeautifulSoup(html, "html.parser").find()
    assert isinstance(tag, Tag)
    return tag.extract()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()
