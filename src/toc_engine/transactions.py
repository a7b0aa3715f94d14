"""Interpretation of the host's edit-log (transaction) messages.

Mirrors the host's own outline panel: an edit can change the heading
structure if a "do" operation carries heading markup, if an insert/update
carries a heading subtype, or if an "undo" update carries heading markup.
The marker strings are matched verbatim against the serialized block HTML.

Example message::

    {"cmd": "transactions",
     "data": {"rootID": "20230101120000-abc1234",
              "sources": [{"doOperations": [{"action": "update", "id": "...",
                                             "data": "<div data-type=\\"NodeHeading\\" ...>"}],
                           "undoOperations": [...]}]}}
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

HEADING_NODE_MARKER = 'data-type="NodeHeading"'
_HEADING_SUBTYPE_RE = re.compile(r'data-subtype="h[1-6]"')

TRANSACTION_COMMANDS = frozenset({"savedoc", "transactions"})


class ActionTag(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    OTHER = "other"

    @classmethod
    def from_action(cls, action: str) -> ActionTag:
        try:
            return cls(action)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True, slots=True)
class Operation:
    """One block operation. ``action`` keeps the host's raw action string."""

    action: str
    id: str | None = None
    data: str | None = None
    parent_id: str | None = None

    @property
    def tag(self) -> ActionTag:
        return ActionTag.from_action(self.action)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> Operation:
        data = raw.get("data")
        return cls(
            action=str(raw.get("action") or ""),
            id=raw.get("id") or None,
            data=data if isinstance(data, str) else None,
            parent_id=raw.get("parentID") or None,
        )


@dataclass(frozen=True, slots=True)
class TransactionSummary:
    root_id: str | None
    operations: tuple[Operation, ...]
    has_heading_change: bool


def is_heading_operation(op: Operation) -> bool:
    data = op.data or ""
    if HEADING_NODE_MARKER in data:
        return True
    if op.tag in (ActionTag.INSERT, ActionTag.UPDATE):
        return bool(_HEADING_SUBTYPE_RE.search(data))
    return False


def is_transaction_message(message: Mapping[str, Any] | None) -> bool:
    return bool(message) and message.get("cmd") in TRANSACTION_COMMANDS


def interpret(message: Mapping[str, Any]) -> TransactionSummary:
    """Summarize the operations in one edit-log message.

    Only the first entry of ``data.sources`` is read, as the host does.
    """
    payload = message.get("data") or {}
    if not isinstance(payload, Mapping):
        payload = {}
    root_id = payload.get("rootID") or None
    sources = payload.get("sources") or []
    if not sources or not isinstance(sources[0], Mapping):
        return TransactionSummary(root_id=root_id, operations=(), has_heading_change=False)

    first = sources[0]
    operations: list[Operation] = []
    heading_change = False

    for raw in first.get("doOperations") or []:
        op = Operation.from_raw(raw)
        operations.append(op)
        if is_heading_operation(op):
            heading_change = True

    for raw in first.get("undoOperations") or []:
        op = Operation.from_raw(raw)
        if op.tag is ActionTag.UPDATE and is_heading_operation(op):
            heading_change = True

    return TransactionSummary(
        root_id=root_id,
        operations=tuple(operations),
        has_heading_change=heading_change,
    )


def removed_or_moved_ids(summary: TransactionSummary) -> list[str]:
    """Ids of delete/move operations; callers check them against the DOM."""
    return [
        op.id
        for op in summary.operations
        if op.id and op.tag in (ActionTag.DELETE, ActionTag.MOVE)
    ]
