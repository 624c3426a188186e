# Copyright (c) Microsoft. All rights reserved.

"""Live status tracking and observer publication for one execution."""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ._state import (
    CurrentAction,
    FinalResult,
    Progress,
    SessionState,
    StreamSnapshot,
    TaskStatus,
    ToolCallRecord,
    utc_timestamp,
)

if TYPE_CHECKING:
    from ._messages import ToolInvocation
    from ._protocols import StatusObserver

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class StatusTracker:
    """Owns the TaskStatus of one execution and publishes every change.

    Each mutation replaces the frozen status with a new snapshot, refreshes its
    timestamp and hands the snapshot to the observer synchronously. The
    tool-call ledger is kept in an insertion-ordered dict keyed by call id.

    Once the session reaches a terminal state further updates are ignored;
    ``finalize()`` publishes the closing notification exactly once.
    """

    def __init__(self, session_id: str, observer: StatusObserver | None = None) -> None:
        self._status = TaskStatus(session_id=session_id)
        self._ledger: OrderedDict[str, ToolCallRecord] = OrderedDict()
        self._observer = observer
        self._finalized = False

    @property
    def status(self) -> TaskStatus:
        return self._status

    @property
    def tool_calls(self) -> list[ToolCallRecord]:
        return list(self._ledger.values())

    @property
    def is_terminal(self) -> bool:
        return self._status.session_state.is_terminal

    def publish(self) -> TaskStatus:
        """Publish the current snapshot without changing it."""
        self._notify()
        return self._status

    def update(
        self,
        *,
        session_state: SessionState | None = None,
        progress: Progress | None = None,
        current_action: CurrentAction | None = None,
        stream: StreamSnapshot | None = _UNSET,
        final_result: FinalResult | None = _UNSET,
    ) -> TaskStatus:
        """Apply a partial update and publish the new snapshot.

        Fields left unset keep their value; an update with no fields only
        refreshes the timestamp. Passing ``stream=None`` clears the stream snapshot.
        """
        if self.is_terminal:
            logger.debug("StatusTracker: ignoring update after terminal state %s", self._status.session_state.value)
            return self._status

        changes: dict[str, Any] = {}
        if session_state is not None and session_state is not self._status.session_state:
            if self._status.session_state.can_transition_to(session_state):
                changes["session_state"] = session_state
            else:
                logger.warning(
                    "StatusTracker: rejected session transition %s -> %s",
                    self._status.session_state.value,
                    session_state.value,
                )
        if progress is not None:
            changes["progress"] = replace(progress, percentage=_clamp(progress.percentage))
        if current_action is not None:
            changes["current_action"] = current_action
        if stream is not _UNSET:
            changes["stream"] = stream
        if final_result is not _UNSET:
            changes["final_result"] = final_result

        self._status = replace(self._status, **changes, timestamp=utc_timestamp())
        self._notify()
        return self._status

    def merge_final_result(self, partial: FinalResult) -> TaskStatus:
        """Merge a strategy's partial final result into the status."""
        existing = self._status.final_result
        if existing is None:
            return self.update(final_result=partial)
        merged = FinalResult(
            success=partial.success,
            summary=partial.summary or existing.summary,
            output_path=partial.output_path or existing.output_path,
            error=partial.error or existing.error,
        )
        return self.update(final_result=merged)

    # ------------------------------------------------------------------
    # Tool-call ledger
    # ------------------------------------------------------------------

    def allocate_call_id(self, invocation: ToolInvocation) -> str:
        """Return a ledger-unique call id, preferring the model's own id."""
        if invocation.id and invocation.id not in self._ledger:
            return invocation.id
        base = invocation.id or invocation.name
        call_id = f"{base}-{uuid.uuid4().hex[:12]}"
        while call_id in self._ledger:
            call_id = f"{base}-{uuid.uuid4().hex[:12]}"
        if invocation.id:
            logger.warning(f"StatusTracker: duplicate call id {invocation.id!r}, using {call_id!r}")
        return call_id

    def add_tool_call(self, record: ToolCallRecord) -> TaskStatus:
        if record.call_id in self._ledger:
            raise ValueError(f"Tool call {record.call_id!r} is already recorded")
        if self.is_terminal:
            return self._status
        self._ledger[record.call_id] = record
        return self._sync_ledger()

    def update_tool_call(self, call_id: str, **changes: Any) -> TaskStatus:
        """Apply changes to one ledger record in place.

        Status changes that would move a record backwards are rejected and the
        whole update is dropped.
        """
        record = self._ledger.get(call_id)
        if record is None:
            logger.warning(f"StatusTracker: no tool call with id {call_id!r}")
            return self._status
        if self.is_terminal:
            return self._status

        new_status = changes.get("status")
        if new_status is not None and not record.status.can_transition_to(new_status):
            logger.warning(
                "StatusTracker: rejected tool call transition %s -> %s for %s",
                record.status.value,
                new_status.value,
                call_id,
            )
            return self._status

        self._ledger[call_id] = replace(record, **changes)
        return self._sync_ledger()

    def latest_export_path(self) -> str | None:
        for record in reversed(self._ledger.values()):
            if record.export_path:
                return record.export_path
        return None

    def finalize(self) -> TaskStatus:
        """Publish the closing notification; later calls are no-ops."""
        if self._finalized:
            return self._status
        self._finalized = True
        self._notify()
        return self._status

    def _sync_ledger(self) -> TaskStatus:
        self._status = replace(self._status, tool_calls=tuple(self._ledger.values()), timestamp=utc_timestamp())
        self._notify()
        return self._status

    def _notify(self) -> None:
        if self._observer is None:
            return
        try:
            self._observer(self._status)
        except Exception:
            logger.exception("StatusTracker: status observer raised")


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))
