"""
Live subscription manager.

Keeps an in-memory projection per collection while that collection has
subscribers. The projection is changed only by ``apply_change`` (reducer
style); after each change every subscription on that collection is told
about it, filtered server-side by the subscription's scope filter:

    record enters scope / changes inside scope  → ("upsert", record)
    record leaves scope or is removed           → ("remove", {"id": ...})

Projections are filled lazily: the first subscription with a given scope
filter pulls that scope's newest records through the loader, and a
projection only keeps records some live subscription can see, capped at
``max_records``. When the last subscription of a collection closes its
projection is dropped.

Subscriptions are registered per caller session and torn down through the
returned handle (or all at once with ``close_session``).

Repositories feed the manager after every successful commit via
``publish_changes``; nothing else writes to a projection.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field

from flask import current_app, has_app_context

from portal.models.user import public_user_fields
from portal.services.access_scope import scope_for

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "projects", "deliveries", "safety_docs", "notifications")

CHANGE_UPSERT = "upsert"
CHANGE_REMOVE = "remove"
CHANGE_KINDS = (CHANGE_UPSERT, CHANGE_REMOVE)


@dataclass(frozen=True)
class Change:
    collection: str
    kind: str
    record_id: str
    record: dict | None = None


@dataclass(eq=False)
class SubscriptionHandle:
    id: int
    session_id: str
    collection: str
    filter: object
    callback: object
    view: object = None
    visible: set = field(default_factory=set)
    _manager: SubscriptionManager | None = None

    @property
    def is_open(self) -> bool:
        return self._manager is not None

    def close(self) -> None:
        if self._manager is not None:
            self._manager._remove(self)
            self._manager = None


class SubscriptionManager:
    """Scoped projections plus scoped push to subscribers.

    Args:
        loader: ``loader(collection, flt, limit)`` returning the newest
            in-scope records as dicts. Without one, projections start empty
            and are seeded only through ``hydrate``.
        max_records: per-collection projection cap; the oldest records
            are evicted first. ``None`` means unbounded.
    """

    def __init__(self, loader=None, max_records: int | None = None):
        self._loader = loader
        self._max_records = max_records
        self._projections: dict[str, dict[str, dict]] = {}
        self._loaded: dict[str, set] = {}
        self._subscriptions: dict[int, SubscriptionHandle] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # ── Reducer ──────────────────────────────────────────────────────────

    def apply_change(self, change: Change) -> None:
        """Fold one change into its projection, then notify subscribers."""
        _check_collection(change.collection)
        if change.kind not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {change.kind}")
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.collection == change.collection]
            projection = self._projections.get(change.collection)
            if projection is not None:
                record = change.record or {}
                if change.kind == CHANGE_UPSERT and any(s.filter.matches(record) for s in targets):
                    projection[change.record_id] = dict(record)
                    self._evict(projection)
                else:
                    projection.pop(change.record_id, None)

        for sub in targets:
            self._dispatch(sub, change)

    def hydrate(self, collection: str, records: list[dict]) -> None:
        """Seed a projection without notifying anyone."""
        _check_collection(collection)
        with self._lock:
            projection = self._projections.setdefault(collection, {})
            for record in records:
                projection[record["id"]] = dict(record)
            self._evict(projection)

    def snapshot(self, collection: str, flt) -> list[dict]:
        """Records currently in scope, newest first."""
        _check_collection(collection)
        with self._lock:
            projection = self._projections.get(collection, {})
            records = [dict(r) for r in projection.values() if flt.matches(r)]
        return _newest_first(records)

    def projection_size(self, collection: str) -> int:
        _check_collection(collection)
        with self._lock:
            return len(self._projections.get(collection, ()))

    # ── Subscription lifetime ────────────────────────────────────────────

    def subscribe(self, session_id: str, collection: str, flt, callback, *, view=None) -> SubscriptionHandle:
        """Register a scoped listener; it immediately receives the in-scope snapshot.

        ``view`` narrows each record before it reaches the callback.
        """
        _check_collection(collection)
        with self._lock:
            handle = SubscriptionHandle(
                id=next(self._ids),
                session_id=session_id,
                collection=collection,
                filter=flt,
                callback=callback,
                view=view,
                _manager=self,
            )
            self._subscriptions[handle.id] = handle
            self._projections.setdefault(collection, {})
            needs_load = self._loader is not None and flt not in self._loaded.setdefault(collection, set())

        if needs_load:
            try:
                self._load(collection, flt)
            except Exception:
                handle.close()
                raise

        for record in self.snapshot(collection, flt):
            handle.visible.add(record["id"])
            self._deliver(handle, CHANGE_UPSERT, record)
        logger.debug("subscription_opened id=%s session=%s collection=%s",
                     handle.id, session_id, collection)
        return handle

    def subscribe_for(self, session_id: str, caller, collection: str, callback) -> SubscriptionHandle:
        """Subscribe with the caller's access scope for ``collection``.

        Contractors get the public directory view of user records.
        """
        view = public_user_fields if collection == "users" and not caller.is_admin else None
        return self.subscribe(
            session_id, collection, scope_for(caller).for_collection(collection), callback, view=view,
        )

    def close_session(self, session_id: str) -> int:
        with self._lock:
            handles = [s for s in self._subscriptions.values() if s.session_id == session_id]
        for handle in handles:
            handle.close()
        return len(handles)

    def subscription_count(self, session_id: str | None = None) -> int:
        with self._lock:
            if session_id is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions.values() if s.session_id == session_id)

    # ── Internals ────────────────────────────────────────────────────────

    def _load(self, collection: str, flt) -> None:
        records = self._loader(collection, flt, self._max_records)
        with self._lock:
            projection = self._projections.get(collection)
            if projection is None:
                return
            for record in records:
                # Anything already held came from a newer commit
                projection.setdefault(record["id"], dict(record))
            self._evict(projection)
            self._loaded.setdefault(collection, set()).add(flt)
        logger.debug("projection_loaded collection=%s records=%d", collection, len(records))

    def _evict(self, projection: dict) -> None:
        if self._max_records is None:
            return
        overflow = len(projection) - self._max_records
        if overflow > 0:
            oldest = sorted(projection.values(), key=lambda r: r.get("created_at") or "")[:overflow]
            for record in oldest:
                projection.pop(record["id"], None)

    def _remove(self, handle: SubscriptionHandle) -> None:
        with self._lock:
            self._subscriptions.pop(handle.id, None)
            if not any(s.collection == handle.collection for s in self._subscriptions.values()):
                self._projections.pop(handle.collection, None)
                self._loaded.pop(handle.collection, None)

    def _dispatch(self, sub: SubscriptionHandle, change: Change) -> None:
        in_scope = change.kind == CHANGE_UPSERT and sub.filter.matches(change.record or {})
        if in_scope:
            sub.visible.add(change.record_id)
            self._deliver(sub, CHANGE_UPSERT, dict(change.record))
        elif change.record_id in sub.visible:
            sub.visible.discard(change.record_id)
            self._deliver(sub, CHANGE_REMOVE, {"id": change.record_id})

    def _deliver(self, sub: SubscriptionHandle, kind: str, record: dict) -> None:
        if kind == CHANGE_UPSERT and sub.view is not None:
            record = sub.view(record)
        try:
            sub.callback(kind, record)
        except Exception:
            # One broken listener must not starve the others.
            logger.exception("subscription_callback_failed id=%s collection=%s", sub.id, sub.collection)


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")


def _newest_first(records: list[dict]) -> list[dict]:
    return sorted(records, key=lambda r: r.get("created_at") or "", reverse=True)


def init_subscriptions(app, loader=None):
    app.extensions["subscriptions"] = SubscriptionManager(
        loader=loader,
        max_records=app.config.get("SUBSCRIPTION_SNAPSHOT_LIMIT"),
    )


def get_manager() -> SubscriptionManager | None:
    if not has_app_context():
        return None
    return current_app.extensions.get("subscriptions")


def publish_changes(changes: list[Change]) -> None:
    manager = get_manager()
    if manager is None:
        return
    for change in changes:
        manager.apply_change(change)
