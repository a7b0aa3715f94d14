"""Thin client for the host's HTTP query interface.

Every endpoint answers with the envelope ``{"code": int, "msg": str,
"data": ...}``; ``code == 0`` is success. Transport and decode failures are
folded into ``code = -1`` so callers only ever see "no data".
"""
from __future__ import annotations

import logging
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

import orjson
from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:6806"
_SUBTYPE_RE = re.compile(r"^h([1-6])$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ApiResponse:
    code: int
    msg: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == 0


@dataclass(frozen=True, slots=True)
class Heading:
    """One flattened outline entry."""

    id: str
    content: str
    depth: int
    subtype: str | None = None


class OutlineClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        token: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def fetch_post(self, path: str, payload: dict[str, Any] | None = None) -> ApiResponse:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Token {self._token}"
        req = urllib.request.Request(
            f"{self._base_url}{path}",
            data=orjson.dumps(payload or {}),
            headers=headers,
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                body = orjson.loads(resp.read())
        except (urllib.error.URLError, OSError, orjson.JSONDecodeError) as exc:
            log.warning("request to %s failed: %s", path, exc)
            return ApiResponse(code=-1, msg=str(exc))
        if not isinstance(body, dict):
            return ApiResponse(code=-1, msg="malformed response envelope")
        code = body.get("code", -1)
        return ApiResponse(
            code=code if isinstance(code, int) else -1,
            msg=str(body.get("msg") or ""),
            data=body.get("data"),
        )

    def get_doc_outline(self, doc_id: str, *, preview: bool = False) -> list[dict[str, Any]]:
        """Raw outline tree for *doc_id*; ``[]`` when unavailable."""
        result = self.fetch_post("/api/outline/getDocOutline", {"id": doc_id, "preview": preview})
        if result.ok:
            return list(result.data or [])
        log.warning("no outline for %s: %s", doc_id, result.msg)
        return []

    def get_block_info(self, block_id: str) -> Any:
        result = self.fetch_post("/api/block/getBlockInfo", {"id": block_id})
        return result.data if result.ok else None

    def get_doc_info(self, doc_id: str) -> Any:
        result = self.fetch_post("/api/block/getDocInfo", {"id": doc_id})
        return result.data if result.ok else None

    def check_block_exist(self, block_id: str) -> bool:
        result = self.fetch_post("/api/block/checkBlockExist", {"id": block_id})
        return result.ok and result.data is True

    def check_block_fold(self, block_id: str) -> bool:
        result = self.fetch_post("/api/block/checkBlockFold", {"id": block_id})
        return result.ok and result.data is True


def plain_text(markup: str) -> str:
    if not markup:
        return ""
    return BeautifulSoup(markup, "html.parser").get_text()


def _as_depth(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value or default)
    except (TypeError, ValueError):
        return default


def flatten_outline(items: list[dict[str, Any]]) -> list[Heading]:
    """Depth-first flatten of an outline tree.

    ``subType``/``subtype`` of ``h1``..``h6`` overrides the nesting depth;
    children come from ``children`` or, on older hosts, ``blocks``.
    """
    flat: list[Heading] = []

    def traverse(nodes: list[dict[str, Any]], level: int) -> None:
        for node in nodes:
            raw = node.get("content") or node.get("name") or "Untitled"
            depth = _as_depth(node.get("depth"), level)
            subtype = node.get("subType") or node.get("subtype")
            if not isinstance(subtype, str):
                subtype = None
            if subtype:
                m = _SUBTYPE_RE.match(subtype)
                if m:
                    depth = int(m.group(1))
            flat.append(Heading(
                id=str(node.get("id") or ""),
                content=plain_text(raw),
                depth=depth,
                subtype=subtype,
            ))
            children = node.get("children") or node.get("blocks")
            if children:
                traverse(children, depth + 1)

    traverse(items or [], 1)
    return flat
