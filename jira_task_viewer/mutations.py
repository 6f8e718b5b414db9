# Optimistic worklog mutations.
#
# The tracker owns the worklog list of the issue currently on screen. A
# create/update/delete is applied to that list immediately and remembered by
# correlation token together with a copy of the list taken just before it.
# Success swaps the optimistic entry for the server's record; failure restores
# the copy (or, when other mutations on the same list are still pending, only
# the entry this mutation touched). Settling one mutation also patches the
# copies held by the others, so each copy stays the list minus its own edit.

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .dispatcher import NEW_WORKLOG
from .errors import ConcurrentMutationRejected
from .models import Worklog

logger = logging.getLogger('jira_task_viewer.mutations')


class MutationOp(enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class PendingMutation:
    token: int
    op: MutationOp
    issue_key: str
    target: str                      # worklog id, or NEW_WORKLOG for creates
    entry: Optional[Worklog]         # optimistic value (create/update)
    original: Optional[Worklog]      # pre-mutation value (update/delete)
    index: int                       # position of the touched entry
    before: Tuple[Worklog, ...]      # whole list before this mutation


def local_id(token: int) -> str:
    return f"local-{token}"


def _index_of(entries: List[Worklog], worklog_id: str) -> int:
    for idx, wl in enumerate(entries):
        if wl.id == worklog_id:
            return idx
    return -1


class MutationTracker:
    def __init__(self) -> None:
        self.issue_key: Optional[str] = None
        self.entries: List[Worklog] = []
        self._pending: Dict[int, PendingMutation] = {}

    # -- list ownership -------------------------------------------------
    def load(self, issue_key: Optional[str], worklogs: List[Worklog]) -> None:
        """Replace the list with server data, re-applying pending edits on top."""
        self.issue_key = issue_key
        self.entries = list(worklogs)
        for token in sorted(self._pending):
            pending = self._pending[token]
            if pending.issue_key != issue_key:
                continue
            pending.before = tuple(self.entries)
            self._reapply(pending)

    def _reapply(self, pending: PendingMutation) -> None:
        if pending.op is MutationOp.CREATE:
            if _index_of(self.entries, pending.entry.id) < 0:
                pending.index = len(self.entries)
                self.entries.append(pending.entry)
            return
        idx = _index_of(self.entries, pending.target)
        if idx < 0:
            return
        pending.index = idx
        if pending.op is MutationOp.UPDATE:
            self.entries[idx] = pending.entry
        else:
            del self.entries[idx]

    # -- guards ---------------------------------------------------------
    def is_pending(self, target: str) -> bool:
        return any(p.target == target for p in self._pending.values())

    def check(self, target: Optional[str]) -> None:
        target = target or NEW_WORKLOG
        if self.is_pending(target):
            what = "A new worklog" if target == NEW_WORKLOG else f"Worklog {target}"
            raise ConcurrentMutationRejected(f"{what} is still being saved")

    def pending_for(self, issue_key: str) -> List[PendingMutation]:
        return [p for p in self._pending.values() if p.issue_key == issue_key]

    def __len__(self) -> int:
        return len(self._pending)

    # -- optimistic application ----------------------------------------
    def _register(self, pending: PendingMutation) -> PendingMutation:
        self._pending[pending.token] = pending
        logger.debug("optimistic %s on %s (token=%d)", pending.op.value, pending.target, pending.token)
        return pending

    def apply_create(self, token: int, issue_key: str, draft: Worklog) -> PendingMutation:
        self.check(NEW_WORKLOG)
        entry = replace(draft, id=local_id(token), issue_key=issue_key, pending=True)
        pending = PendingMutation(token=token, op=MutationOp.CREATE, issue_key=issue_key, target=NEW_WORKLOG,
                                  entry=entry, original=None, index=len(self.entries), before=tuple(self.entries))
        self.entries.append(entry)
        return self._register(pending)

    def apply_update(self, token: int, issue_key: str, updated: Worklog) -> PendingMutation:
        self.check(updated.id)
        idx = _index_of(self.entries, updated.id)
        if idx < 0:
            raise KeyError(updated.id)
        entry = replace(updated, pending=True)
        pending = PendingMutation(token=token, op=MutationOp.UPDATE, issue_key=issue_key, target=updated.id,
                                  entry=entry, original=self.entries[idx], index=idx, before=tuple(self.entries))
        self.entries[idx] = entry
        return self._register(pending)

    def apply_delete(self, token: int, issue_key: str, worklog_id: str) -> PendingMutation:
        self.check(worklog_id)
        idx = _index_of(self.entries, worklog_id)
        if idx < 0:
            raise KeyError(worklog_id)
        pending = PendingMutation(token=token, op=MutationOp.DELETE, issue_key=issue_key, target=worklog_id,
                                  entry=None, original=self.entries[idx], index=idx, before=tuple(self.entries))
        del self.entries[idx]
        return self._register(pending)

    # -- settlement -----------------------------------------------------
    def succeed(self, token: int, server: Optional[Worklog] = None) -> Optional[PendingMutation]:
        pending = self._pending.pop(token, None)
        if pending is None:
            return pending
        # full replace with the authoritative record
        if server is None and pending.entry is not None:
            server = replace(pending.entry, pending=False)
        self._rebase_others(pending, server, failed=False)
        if pending.issue_key == self.issue_key:
            _settle(self.entries, pending, server, failed=False)
        return pending

    def fail(self, token: int) -> Optional[PendingMutation]:
        pending = self._pending.pop(token, None)
        if pending is None:
            return pending
        self._rebase_others(pending, None, failed=True)
        if pending.issue_key != self.issue_key:
            return pending
        if not self.pending_for(pending.issue_key):
            self.entries = list(pending.before)
        else:
            _settle(self.entries, pending, None, failed=True)
        logger.debug("rolled back %s on %s (token=%d)", pending.op.value, pending.target, token)
        return pending

    def _rebase_others(self, settled: PendingMutation, server: Optional[Worklog], failed: bool) -> None:
        # keep the other snapshots in step with the live list
        for other in self.pending_for(settled.issue_key):
            before = list(other.before)
            _settle(before, settled, server, failed)
            other.before = tuple(before)


def _settle(entries: List[Worklog], pending: PendingMutation, server: Optional[Worklog], failed: bool) -> None:
    """Apply the outcome of ``pending`` to ``entries`` in place."""
    if pending.op is MutationOp.CREATE:
        idx = _index_of(entries, pending.entry.id)
        if failed:
            if idx >= 0:
                del entries[idx]
        elif idx >= 0:
            entries[idx] = server
        elif _index_of(entries, server.id) < 0:
            entries.append(server)
    elif pending.op is MutationOp.UPDATE:
        idx = _index_of(entries, pending.target)
        if idx >= 0:
            entries[idx] = pending.original if failed else server
    elif failed:
        if _index_of(entries, pending.target) < 0:
            entries.insert(min(pending.index, len(entries)), pending.original)
    else:
        idx = _index_of(entries, pending.target)
        if idx >= 0:
            del entries[idx]
