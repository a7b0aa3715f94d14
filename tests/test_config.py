"""Tests for toc_engine.config merging and persistence."""
from __future__ import annotations

import logging
from pathlib import Path

import orjson
import pytest

from toc_engine.config import (
    DEFAULT_CONFIG,
    ConfigError,
    TocConfig,
    config_to_dict,
    load_config,
    merge_config,
    save_config,
)


class TestMergeConfig:
    def test_empty_yields_defaults(self) -> None:
        assert merge_config(None) is DEFAULT_CONFIG
        assert merge_config({}) is DEFAULT_CONFIG

    def test_partial_document(self) -> None:
        cfg = merge_config({"dockSide": "left", "tocWidth": 300, "isPinned": True})
        assert cfg.dock_side == "left"
        assert cfg.toc_width == 300
        assert cfg.is_pinned is True
        assert cfg.mini_toc_width == DEFAULT_CONFIG.mini_toc_width
        assert cfg.fullscreen == DEFAULT_CONFIG.fullscreen

    def test_null_values_keep_defaults(self) -> None:
        cfg = merge_config({"dockSide": None, "followFocus": None})
        assert cfg.dock_side == "right"
        assert cfg.follow_focus is True

    def test_unknown_dock_side(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="toc_engine.config"):
            cfg = merge_config({"dockSide": "top"})
        assert cfg.dock_side == "right"
        assert "unknown dock side" in caplog.text

    def test_unknown_toolbar_actions_dropped(self) -> None:
        cfg = merge_config({"toolbarConfig": ["refreshDoc", "launchRocket", "expandAll"]})
        assert cfg.toolbar_config == ("refreshDoc", "expandAll")

    def test_non_list_toolbar_becomes_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="toc_engine.config"):
            assert merge_config({"toolbarConfig": "refreshDoc"}).toolbar_config == ()
        assert "toolbarConfig must be a list" in caplog.text

    def test_non_integer_width_ignored(self) -> None:
        cfg = merge_config({"tocWidth": "wide", "miniTocWidth": 40})
        assert cfg.toc_width == DEFAULT_CONFIG.toc_width
        assert cfg.mini_toc_width == 40

    def test_boolean_width_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="toc_engine.config"):
            cfg = merge_config({"tocWidth": True})
        assert cfg.toc_width == DEFAULT_CONFIG.toc_width
        assert "toc_width must be an integer" in caplog.text

    def test_fullscreen_merge(self) -> None:
        cfg = merge_config({"fullscreenConfig": {"enableMermaid": False, "buttonPosition": "top-right"}})
        assert cfg.fullscreen.enable_mermaid is False
        assert cfg.fullscreen.enable_echarts is True
        assert cfg.fullscreen.button_position == "top-right"

    def test_bad_button_position(self) -> None:
        cfg = merge_config({"fullscreenConfig": {"buttonPosition": "middle"}})
        assert cfg.fullscreen.button_position == "top-left"


class TestPersistence:
    def test_to_dict_uses_stored_keys(self) -> None:
        doc = config_to_dict(DEFAULT_CONFIG)
        assert doc["dockSide"] == "right"
        assert doc["toolbarConfig"] == ["scrollToTop", "scrollToBottom", "refreshDoc"]
        assert doc["fullscreenConfig"]["enableECharts"] is True
        assert "fullscreen" not in doc

    def test_save_then_load(self, tmp_path: Path) -> None:
        cfg = TocConfig(dock_side="left", toc_width=320, toolbar_config=("collapseAll",))
        path = tmp_path / "plugin" / "config.json"
        save_config(cfg, path)
        assert load_config(path) == cfg

    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "absent.json") is DEFAULT_CONFIG

    def test_non_object_root(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_bytes(orjson.dumps(["dockSide", "left"]))
        with pytest.raises(ConfigError, match="must be an object"):
            load_config(path)
