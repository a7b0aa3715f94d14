"""Persisted plugin settings (``config.json``).

The host stores a flat camelCase key/value document with one nested object,
``fullscreenConfig``. Saved values are merged over the defaults key by key so
documents written by older versions still load.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

from toc_engine.io_utils import load_json, save_json

log = logging.getLogger(__name__)

TOOLBAR_ACTIONS: frozenset[str] = frozenset({
    "scrollToTop",
    "scrollToBottom",
    "refreshDoc",
    "togglePin",
    "toggleDockSide",
    "collapseAll",
    "expandAll",
})
DOCK_SIDES = ("left", "right")
BUTTON_POSITIONS = ("top-right", "top-left")


class ConfigError(ValueError):
    """Raised when a settings document is not a JSON object."""


@dataclass(frozen=True, slots=True)
class FullscreenConfig:
    enable_fullscreen_helper: bool = True
    enable_mermaid: bool = True
    enable_echarts: bool = True
    enable_sheet_music: bool = True
    enable_graphviz: bool = True
    enable_flowchart: bool = True
    enable_iframe: bool = True
    enable_double_click: bool = True
    button_position: str = "top-left"


@dataclass(frozen=True, slots=True)
class TocConfig:
    dock_side: str = "right"
    is_pinned: bool = False
    toc_width: int = 250
    follow_focus: bool = True
    mini_toc_width: int = 32
    adaptive_height: bool = True
    toolbar_config: tuple[str, ...] = ("scrollToTop", "scrollToBottom", "refreshDoc")
    custom_css: str = ""
    fullscreen: FullscreenConfig = field(default_factory=FullscreenConfig)


DEFAULT_CONFIG = TocConfig()

# Python field name -> persisted key.
_TOC_KEYS = {
    "dock_side": "dockSide",
    "is_pinned": "isPinned",
    "toc_width": "tocWidth",
    "follow_focus": "followFocus",
    "mini_toc_width": "miniTocWidth",
    "adaptive_height": "adaptiveHeight",
    "toolbar_config": "toolbarConfig",
    "custom_css": "customCss",
}
_FULLSCREEN_KEYS = {
    "enable_fullscreen_helper": "enableFullscreenHelper",
    "enable_mermaid": "enableMermaid",
    "enable_echarts": "enableECharts",
    "enable_sheet_music": "enableSheetMusic",
    "enable_graphviz": "enableGraphviz",
    "enable_flowchart": "enableFlowchart",
    "enable_iframe": "enableIFrame",
    "enable_double_click": "enableDoubleClick",
    "button_position": "buttonPosition",
}


def _merge_fullscreen(saved: Any) -> FullscreenConfig:
    base = FullscreenConfig()
    if not isinstance(saved, Mapping):
        return base
    updates = {
        name: saved[key]
        for name, key in _FULLSCREEN_KEYS.items()
        if saved.get(key) is not None
    }
    merged = replace(base, **updates)
    if merged.button_position not in BUTTON_POSITIONS:
        log.warning("unknown fullscreen button position %r", merged.button_position)
        merged = replace(merged, button_position=base.button_position)
    return merged


def merge_config(saved: Mapping[str, Any] | None) -> TocConfig:
    """Merge a persisted settings document over ``DEFAULT_CONFIG``."""
    if not saved:
        return DEFAULT_CONFIG
    updates: dict[str, Any] = {
        name: saved[key]
        for name, key in _TOC_KEYS.items()
        if saved.get(key) is not None
    }

    if updates.get("dock_side", "right") not in DOCK_SIDES:
        log.warning("unknown dock side %r, using right", updates["dock_side"])
        updates["dock_side"] = "right"

    if "toolbar_config" in updates:
        raw = updates["toolbar_config"]
        if not isinstance(raw, list):
            log.warning("toolbarConfig must be a list, got %r", raw)
            raw = []
        actions = [a for a in raw if a in TOOLBAR_ACTIONS]
        dropped = [a for a in raw if a not in TOOLBAR_ACTIONS]
        if dropped:
            log.warning("dropping unknown toolbar actions: %s", dropped)
        updates["toolbar_config"] = tuple(actions)

    for name in ("toc_width", "mini_toc_width"):
        if name in updates and (
            isinstance(updates[name], bool) or not isinstance(updates[name], int)
        ):
            log.warning("%s must be an integer, got %r", name, updates[name])
            del updates[name]

    updates["fullscreen"] = _merge_fullscreen(saved.get("fullscreenConfig"))
    return replace(DEFAULT_CONFIG, **updates)


def config_to_dict(config: TocConfig) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(config):
        if f.name == "fullscreen":
            continue
        value = getattr(config, f.name)
        out[_TOC_KEYS[f.name]] = list(value) if isinstance(value, tuple) else value
    out["fullscreenConfig"] = {
        key: getattr(config.fullscreen, name) for name, key in _FULLSCREEN_KEYS.items()
    }
    return out


def load_config(path: Path) -> TocConfig:
    """Load settings from *path*; a missing file yields the defaults."""
    if not path.exists():
        return DEFAULT_CONFIG
    raw = load_json(path)
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: settings root must be an object, got {type(raw).__name__}")
    return merge_config(raw)


def save_config(config: TocConfig, path: Path) -> None:
    save_json(config_to_dict(config), path)
