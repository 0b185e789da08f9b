"""
Repository base: CRUD and scoped queries over one collection.

Repositories own shape validation only (required fields, date strings, enum
membership). Business rules live in the services. Writes are staged on the
session; ``commit_or_raise`` flushes, snapshots the staged records for the
subscription manager, commits, and only then publishes, so subscribers never
see a write the store rejected.

Usage:
    repo = DeliveryRepository()
    delivery = repo.get_scoped(delivery_id, scope.deliveries)
    repo.update(delivery, {"priority": "ALTA"})
    commit_or_raise("update_delivery")
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from portal.core.exceptions import NotFoundError, StoreUnavailable
from portal.models import db
from portal.services.access_scope import OP_ANY, OP_CONTAINS, OP_EQ, OP_NE
from portal.services.subscriptions import CHANGE_REMOVE, CHANGE_UPSERT, Change, publish_changes

logger = logging.getLogger(__name__)

_STAGED_KEY = "portal_staged_changes"


def new_id():
    return str(uuid.uuid4())


def _staged():
    return db.session.info.setdefault(_STAGED_KEY, [])


def commit_or_raise(action="commit"):
    """Commit the current session and publish its staged changes.

    Raises:
        StoreUnavailable: the store failed the flush or commit. The session
            is rolled back and nothing is published.
    """
    staged = db.session.info.pop(_STAGED_KEY, [])
    try:
        db.session.flush()
        changes = []
        for collection, kind, obj, record_id in staged:
            if kind == CHANGE_UPSERT:
                changes.append(Change(collection, kind, obj.id, obj.to_dict()))
            else:
                changes.append(Change(collection, kind, record_id))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("store_write_failed action=%s", action)
        raise StoreUnavailable(f"Could not save changes ({action}); please try again") from exc
    publish_changes(changes)


def discard_staged():
    db.session.info.pop(_STAGED_KEY, None)


class Repository:
    """Generic repository. Subclasses set ``model`` and ``collection``."""

    model = None
    collection = None
    label = None

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, record_id, *, include_deleted=False):
        """Fetch by id or raise NotFoundError."""
        obj = self.get_or_none(record_id, include_deleted=include_deleted)
        if obj is None:
            raise NotFoundError(resource=self._label(), resource_id=record_id)
        return obj

    def get_or_none(self, record_id, *, include_deleted=False):
        if not record_id:
            return None
        try:
            obj = db.session.get(self.model, record_id)
        except SQLAlchemyError as exc:
            logger.exception("store_read_failed collection=%s id=%s", self.collection, record_id)
            raise StoreUnavailable("Could not load data; please try again") from exc
        if obj is not None and not include_deleted and getattr(obj, "deleted_at", None) is not None:
            return None
        return obj

    def get_scoped(self, record_id, flt):
        """Fetch by id within a scope filter.

        Out-of-scope and missing records are indistinguishable: both raise
        NotFoundError.
        """
        stmt = select(self.model).where(self.model.id == record_id)
        stmt = self._live(stmt)
        criterion = self.criterion(flt)
        if criterion is not None:
            stmt = stmt.where(criterion)
        try:
            obj = db.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("store_read_failed collection=%s id=%s", self.collection, record_id)
            raise StoreUnavailable("Could not load data; please try again") from exc
        if obj is None:
            logger.debug("get_scoped: %s id=%s not found in scope %s", self._label(), record_id, flt)
            raise NotFoundError(resource=self._label(), resource_id=record_id)
        return obj

    def list_scoped(self, flt, *, criteria=(), limit=None, offset=0, order_by=None):
        """List live records matching a scope filter plus extra criteria.

        Returns:
            (items, total)
        """
        query = self.model.query
        if hasattr(self.model, "deleted_at"):
            query = query.filter(self.model.deleted_at.is_(None))
        criterion = self.criterion(flt)
        if criterion is not None:
            query = query.filter(criterion)
        for extra in criteria:
            query = query.filter(extra)
        try:
            total = query.count()
            query = query.order_by(order_by if order_by is not None else self.model.created_at.desc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all(), total
        except SQLAlchemyError as exc:
            logger.exception("store_read_failed collection=%s", self.collection)
            raise StoreUnavailable("Could not load data; please try again") from exc

    def criterion(self, flt):
        """Translate a FieldFilter into a SQLAlchemy criterion (None = unfiltered)."""
        if flt.op == OP_ANY:
            return None
        column = getattr(self.model, flt.field, None)
        if column is None:
            raise ValueError(f"{self.model.__name__} has no field {flt.field!r} to scope on")
        if flt.op == OP_EQ:
            return column == flt.value
        if flt.op == OP_NE:
            return column != flt.value
        if flt.op == OP_CONTAINS:
            return self.contains_criterion(flt)
        raise ValueError(f"Unknown filter op: {flt.op}")

    def contains_criterion(self, flt):
        raise ValueError(f"{self.model.__name__}.{flt.field} does not support 'contains'")

    # ── Writes ───────────────────────────────────────────────────────────

    def stage_upsert(self, obj):
        db.session.add(obj)
        _staged().append((self.collection, CHANGE_UPSERT, obj, None))
        return obj

    def stage_remove(self, record_id):
        _staged().append((self.collection, CHANGE_REMOVE, None, record_id))

    def update(self, obj, patch):
        """Apply a shape-validated patch. Subclasses validate then call this."""
        for key, value in patch.items():
            setattr(obj, key, value)
        return self.stage_upsert(obj)

    def soft_delete(self, obj):
        """Idempotent soft delete. Returns True if the record changed."""
        changed = obj.soft_delete()
        if changed:
            db.session.add(obj)
            self.stage_remove(obj.id)
        return changed

    def hard_delete(self, obj):
        record_id = obj.id
        db.session.delete(obj)
        self.stage_remove(record_id)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _live(self, stmt):
        if hasattr(self.model, "deleted_at"):
            stmt = stmt.where(self.model.deleted_at.is_(None))
        return stmt

    def _label(self):
        return self.label or self.model.__name__
