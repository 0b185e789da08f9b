"""
Soft Delete Mixin

Adds `deleted_at` timestamp column and query helpers for soft delete.
Models that include this mixin are marked as deleted rather than
physically removed, and every listing filters them out.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    # Soft delete (idempotent: a second call keeps the first deleted_at)
    changed = obj.soft_delete()

    # Query only live records
    MyModel.query_active().all()
"""

from datetime import datetime, timezone

from portal.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted.

        Returns:
            True if the record changed, False if it was already deleted.
        """
        if self.deleted_at is not None:
            return False
        self.deleted_at = datetime.now(timezone.utc)
        return True

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
