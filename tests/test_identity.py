"""Tests for toc_engine.identity: heuristic chain and history keys."""
from __future__ import annotations

import pytest
from bs4.element import Tag

from toc_engine import identity
from toc_engine.identity import (
    HISTORY_SENTINEL,
    doc_key_for_host,
    from_structural_attributes,
    history_content_signature,
    is_focus_mode_via_dom,
    resolve,
    resolve_doc_id,
)
from toc_engine.surface import EditorState, UiTree

DOC_ID = "20230101120000-abc1234"

HISTORY_HTML = f"""
<div class="b3-dialog b3-dialog--open" data-key="dialog-history">
  <div class="history__panel">
    <div class="history__side">
      <div class="b3-list-item" data-path="/data/20221231000000-old0000.sy">older</div>
      <div class="b3-list-item b3-list-item--focus" data-path="/data/{DOC_ID}.sy">snap</div>
    </div>
    <div class="history__text protyle" data-loading="finished">
      <div class="protyle-content">
        <div data-type="NodeHeading" data-node-id="h1" data-subtype="h1">Intro</div>
        <p>body</p>
        <div data-type="NodeHeading" data-node-id="h2" data-subtype="h2">Details</div>
      </div>
    </div>
  </div>
</div>
"""

SEARCH_HTML = """
<div class="b3-dialog b3-dialog--open" data-key="dialog-globalsearch">
  <div class="search__list">
    <div class="b3-list-item" data-root-id="R1">first</div>
    <div class="b3-list-item" data-root-id="R2">second</div>
    <div class="b3-list-item" data-root-id="R3">third</div>
  </div>
  <div class="search__preview protyle">
    <div class="protyle-content"><div class="protyle-wysiwyg"></div></div>
  </div>
</div>
"""


def editor_html(*, focused_dom: bool = False) -> str:
    icon_class = "protyle-breadcrumb__icon" + ("" if focused_dom else " fn__none")
    return f"""
    <div class="protyle">
      <div class="protyle-breadcrumb">
        <span class="protyle-breadcrumb__item" data-node-id="DOC">Doc</span>
        <span class="protyle-breadcrumb__item" data-node-id="BLK">Block</span>
        <span class="{icon_class}" data-type="exit-focus"></span>
      </div>
      <div class="protyle-content">
        <div class="protyle-wysiwyg" data-node-id="DOC">
          <div data-type="NodeHeading" data-node-id="H1">Title</div>
        </div>
      </div>
    </div>
    """


def host_of(tree: UiTree, selector: str) -> Tag:
    host = tree.select_one(selector)
    assert host is not None
    return host


# ── editor surfaces ─────────────────────────────────────────────────


class TestEditorResolution:
    def test_root_id_when_not_zoomed(self) -> None:
        tree = UiTree.from_html(editor_html())
        host = host_of(tree, ".protyle")
        editor = EditorState(element=host, block_id="BLK", root_id="DOC", show_all=True)
        assert resolve_doc_id(host, editor) == "DOC"

    def test_block_id_when_zoomed_by_state(self) -> None:
        tree = UiTree.from_html(editor_html())
        host = host_of(tree, ".protyle")
        editor = EditorState(element=host, block_id="BLK", root_id="DOC", show_all=False)
        assert editor.focused
        assert resolve_doc_id(host, editor) == "BLK"

    def test_block_id_when_zoomed_by_dom_only(self) -> None:
        tree = UiTree.from_html(editor_html(focused_dom=True))
        host = host_of(tree, ".protyle")
        editor = EditorState(element=host, block_id="BLK", root_id="DOC")
        assert is_focus_mode_via_dom(host)
        assert resolve_doc_id(host, editor) == "BLK"

    def test_hidden_exit_icon_is_not_focus(self) -> None:
        tree = UiTree.from_html(editor_html())
        assert not is_focus_mode_via_dom(host_of(tree, ".protyle"))

    def test_zoomed_without_editor_uses_last_breadcrumb(self) -> None:
        tree = UiTree.from_html(editor_html(focused_dom=True))
        assert resolve_doc_id(host_of(tree, ".protyle")) == "BLK"

    def test_structural_attribute_without_editor(self) -> None:
        tree = UiTree.from_html(editor_html())
        assert resolve_doc_id(host_of(tree, ".protyle")) == "DOC"

    def test_content_attribute_beats_write_area(self) -> None:
        tree = UiTree.from_html(
            '<div class="protyle"><div class="protyle-content" data-root-id="C1">'
            '<div class="protyle-wysiwyg" data-node-id="W1"></div></div></div>'
        )
        assert from_structural_attributes(host_of(tree, ".protyle"), None) == "C1"

    def test_breadcrumb_trail_fallback(self) -> None:
        tree = UiTree.from_html(
            '<div class="protyle"><div class="protyle-breadcrumb">'
            '<span class="protyle-breadcrumb__item">home</span>'
            '<span class="protyle-breadcrumb__item" data-node-id="B1">doc</span>'
            '</div><div class="protyle-content"></div></div>'
        )
        assert resolve_doc_id(host_of(tree, ".protyle")) == "B1"

    def test_editor_key_is_doc_id(self) -> None:
        tree = UiTree.from_html(editor_html())
        host = host_of(tree, ".protyle")
        assert resolve(host) == "DOC"
        assert doc_key_for_host(host, "") == ""


# ── search previews ─────────────────────────────────────────────────


class TestSearchResolution:
    def test_first_result_when_none_focused(self) -> None:
        tree = UiTree.from_html(SEARCH_HTML)
        assert resolve_doc_id(host_of(tree, ".search__preview")) == "R1"

    def test_focused_result_wins(self) -> None:
        tree = UiTree.from_html(SEARCH_HTML)
        items = tree.select(".search__list .b3-list-item")
        items[1]["class"] = ["b3-list-item", "b3-list-item--focus"]
        assert resolve_doc_id(host_of(tree, ".search__preview")) == "R2"

    def test_no_results_resolves_nothing(self) -> None:
        tree = UiTree.from_html(
            '<div class="search"><div class="search__list"></div>'
            '<div class="search__preview protyle"><div class="protyle-content"></div></div></div>'
        )
        host = host_of(tree, ".search__preview")
        assert resolve_doc_id(host) is None
        assert resolve_doc_id(host, history_sentinel=True) is None
        assert resolve(host) is None


# ── history previews ────────────────────────────────────────────────


class TestHistoryResolution:
    def test_scenario_key(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        host = host_of(tree, ".history__text")
        assert resolve_doc_id(host) == DOC_ID
        assert resolve(host) == f"{DOC_ID}|/data/{DOC_ID}.sy|finished|c2:h1"

    def test_key_changes_with_loading_state(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        host = host_of(tree, ".history__text")
        before = resolve(host)
        host["data-loading"] = "loading"
        assert resolve(host) != before

    def test_key_changes_with_heading_count(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        host = host_of(tree, ".history__text")
        before = resolve(host)
        content = host_of(tree, ".history__text .protyle-content")
        extra = tree.root.new_tag("div", attrs={"data-type": "NodeHeading", "data-node-id": "h3"})
        content.append(extra)
        assert history_content_signature(host) == "c3:h1"
        assert resolve(host) != before

    def test_key_changes_with_first_heading_id(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        host = host_of(tree, ".history__text")
        before = resolve(host)
        host_of(tree, '.history__text [data-node-id="h1"]')["data-node-id"] = "h9"
        assert history_content_signature(host) == "c2:h9"
        assert resolve(host) != before

    def test_identical_snapshots_share_key(self) -> None:
        first = UiTree.from_html(HISTORY_HTML)
        second = UiTree.from_html(HISTORY_HTML)
        key = resolve(host_of(first, ".history__text"))
        assert key is not None
        assert key == resolve(host_of(second, ".history__text"))

    def test_key_changes_with_selected_snapshot(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        host = host_of(tree, ".history__text")
        before = resolve(host)
        older, current = tree.select(".history__side .b3-list-item")
        current["class"] = ["b3-list-item"]
        older["class"] = ["b3-list-item", "b3-list-item--focus"]
        after = resolve(host)
        assert after is not None and after.startswith("20221231000000-old0000|")
        assert after != before

    def test_first_item_when_none_selected(self) -> None:
        tree = UiTree.from_html(HISTORY_HTML)
        for item in tree.select(".history__side .b3-list-item"):
            item["class"] = ["b3-list-item"]
        assert resolve_doc_id(host_of(tree, ".history__text")) == "20221231000000-old0000"

    def test_item_id_when_no_path(self) -> None:
        tree = UiTree.from_html(
            '<div class="history__panel"><div class="history__list">'
            '<div class="b3-list-item b3-list-item--focus" data-id="20230101120000-zzzzzzz"></div>'
            '</div><div class="history__text protyle"><div class="protyle-content"></div></div></div>'
        )
        assert resolve_doc_id(host_of(tree, ".history__text")) == "20230101120000-zzzzzzz"

    def test_descendant_path_fallback(self) -> None:
        tree = UiTree.from_html(
            '<div class="history__panel"><div class="history__side">'
            '<div class="b3-list-item b3-list-item--focus">bare</div></div>'
            '<span data-path="/repo/20230101120000-ddddddd.sy"></span>'
            '<div class="history__text protyle"><div class="protyle-content"></div></div></div>'
        )
        assert resolve_doc_id(host_of(tree, ".history__text")) == "20230101120000-ddddddd"

    def test_title_fallback(self) -> None:
        tree = UiTree.from_html(
            '<div class="history__panel"><div class="history__side">'
            '<div class="b3-list-item b3-list-item--focus">bare</div></div>'
            '<div class="protyle-title__input" data-node-id="T1"></div>'
            '<div class="history__text protyle"><div class="protyle-content"></div></div></div>'
        )
        assert resolve_doc_id(host_of(tree, ".history__text")) == "T1"

    def test_sentinel_for_unresolvable_history_host(self) -> None:
        tree = UiTree.from_html(
            '<div class="history__text protyle"><div class="protyle-content"></div></div>'
        )
        host = host_of(tree, ".history__text")
        assert resolve_doc_id(host) is None
        assert resolve_doc_id(host, history_sentinel=True) == HISTORY_SENTINEL
        assert resolve(host) == "history||c0"

    def test_sentinel_not_used_for_editor(self) -> None:
        tree = UiTree.from_html('<div class="protyle"><div class="protyle-content"></div></div>')
        assert resolve_doc_id(host_of(tree, ".protyle"), history_sentinel=True) is None


# ── chain robustness ────────────────────────────────────────────────


class TestHeuristicChain:
    def test_failing_heuristic_is_skipped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(host: Tag, editor: EditorState | None) -> str | None:
            raise RuntimeError("broken")

        monkeypatch.setattr(identity, "HEURISTICS", (boom, from_structural_attributes))
        tree = UiTree.from_html(editor_html())
        assert resolve_doc_id(host_of(tree, ".protyle")) == "DOC"

    def test_empty_editor_ids_fall_through(self) -> None:
        tree = UiTree.from_html(editor_html())
        host = host_of(tree, ".protyle")
        assert resolve_doc_id(host, EditorState(element=host)) == "DOC"
