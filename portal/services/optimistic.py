"""
Optimistic update ledger.

Two-phase local update around an asynchronous write:

    pending_id = ledger.apply_optimistic("d-1", {"status": "REVISAO"})
    ... backend write resolves ...
    ledger.reconcile(pending_id, ok=True, confirmed=server_record)   # keep
    ledger.reconcile(pending_id, ok=False)                           # revert

A revert restores the pre-attempt value of each field the update touched,
but only where the field still holds the optimistic value: a newer change
that landed in the meantime (another pending update, or a pushed record)
is left alone. No retries.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass

from portal.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class PendingUpdate:
    id: str
    record_id: str
    patch: dict
    previous: dict


class OptimisticLedger:
    """Local record store plus the set of unreconciled optimistic updates."""

    def __init__(self, records: dict[str, dict] | None = None):
        self.records: dict[str, dict] = {k: dict(v) for k, v in (records or {}).items()}
        self._pending: dict[str, PendingUpdate] = {}
        self._ids = itertools.count(1)

    def get(self, record_id: str) -> dict | None:
        record = self.records.get(record_id)
        return dict(record) if record is not None else None

    def apply_optimistic(self, record_id: str, patch: dict) -> str:
        """Apply ``patch`` locally right away and return its pending id."""
        record = self.records.get(record_id)
        if record is None:
            raise NotFoundError(resource="Record", resource_id=record_id)
        previous = {key: record.get(key, _MISSING) for key in patch}
        record.update(patch)
        pending = PendingUpdate(
            id=f"p{next(self._ids)}", record_id=record_id, patch=dict(patch), previous=previous,
        )
        self._pending[pending.id] = pending
        return pending.id

    def reconcile(self, pending_id: str, ok: bool, confirmed: dict | None = None) -> dict | None:
        """Settle a pending update.

        Args:
            ok: whether the backend accepted the write.
            confirmed: the stored record as the backend returned it; replaces
                the local copy on success.

        Returns:
            The local record after reconciliation.
        """
        pending = self._pending.pop(pending_id, None)
        if pending is None:
            raise NotFoundError(resource="PendingUpdate", resource_id=pending_id)
        record = self.records.get(pending.record_id)
        if record is None:
            return None

        if ok:
            if confirmed is not None:
                record.clear()
                record.update(confirmed)
            return dict(record)

        for key, value in pending.patch.items():
            if record.get(key, _MISSING) != value:
                continue
            old = pending.previous[key]
            if old is _MISSING:
                record.pop(key, None)
            else:
                record[key] = old
        logger.debug("optimistic_reverted pending_id=%s record_id=%s", pending_id, pending.record_id)
        return dict(record)

    def receive(self, kind: str, record: dict) -> None:
        """Subscription callback: fold a pushed upsert/remove into the local store."""
        if kind == "remove":
            self.records.pop(record["id"], None)
        else:
            self.records[record["id"]] = dict(record)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
