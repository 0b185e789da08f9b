"""
Contractor Delivery Portal
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from portal.models import db

# ── Constants ────────────────────────────────────────────────────────────────

NOTIF_COMMENT = "COMMENT"
NOTIF_SUBMITTED = "SUBMITTED"
NOTIF_APPROVED = "APPROVED"
NOTIF_ADJUST_REQUESTED = "ADJUST_REQUESTED"
NOTIFICATION_TYPES = (NOTIF_COMMENT, NOTIF_SUBMITTED, NOTIF_APPROVED, NOTIF_ADJUST_REQUESTED)


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. Write-once except for ``is_read``,
    which only ever moves from False to True.
    """

    __tablename__ = "notifications"

    id = db.Column(db.String(36), primary_key=True)
    recipient_uid = db.Column(db.String(128), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(400), nullable=False)

    # Link to source entity
    project_id = db.Column(db.String(36), nullable=True)
    delivery_id = db.Column(db.String(36), nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           index=True)

    @validates("is_read")
    def _validate_is_read(self, key, value):
        if self.is_read and not value:
            raise ValueError("A read notification cannot be marked unread")
        return value

    def mark_read(self):
        """Returns True if the flag changed."""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)
        return True

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_uid": self.recipient_uid,
            "type": self.type,
            "title": self.title,
            "project_id": self.project_id,
            "delivery_id": self.delivery_id,
            "read": bool(self.is_read),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
