"""
Contractor Delivery Portal
Delivery domain models.

Models:
    - Delivery: trackable unit of outsourced work with a review lifecycle
    - ChecklistItem: ordered to-do line on a delivery
    - Comment: append-only discussion entry
    - Attachment: metadata-only file reference (no binary payload)

Status values and the transition table live in
``portal.services.delivery_state_machine``; ATRASADO is never persisted.
"""

from datetime import datetime, timezone

from portal.models import db
from portal.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────────

DELIVERY_PRIORITIES = ("BAIXA", "MEDIA", "ALTA")


def _now():
    return datetime.now(timezone.utc)


class Delivery(SoftDeleteMixin, db.Model):
    """
    Unit of work assigned to one contractor under a project.

    Client and project names are denormalized for display, as is the
    contractor's display name.
    """

    __tablename__ = "deliveries"

    id = db.Column(db.String(36), primary_key=True)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    client_name = db.Column(db.String(200), nullable=False, default="")
    project_name = db.Column(db.String(200), nullable=False, default="")

    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    deadline = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="PENDENTE", index=True)
    priority = db.Column(db.String(10), nullable=False, default="MEDIA")

    provider_uid = db.Column(db.String(128), nullable=False, index=True)
    provider_name = db.Column(db.String(200), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    checklist_items = db.relationship(
        "ChecklistItem", order_by="ChecklistItem.position",
        cascade="all, delete-orphan", lazy="selectin",
    )
    comments = db.relationship(
        "Comment", order_by="Comment.created_at",
        cascade="all, delete-orphan", lazy="selectin",
    )
    attachments = db.relationship(
        "Attachment", order_by="Attachment.created_at",
        cascade="all, delete-orphan", lazy="selectin",
    )

    @property
    def attachment_count(self):
        return len(self.attachments)

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "client_name": self.client_name,
            "project_name": self.project_name,
            "title": self.title,
            "description": self.description,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status,
            "priority": self.priority,
            "provider_uid": self.provider_uid,
            "provider_name": self.provider_name,
            "attachment_count": self.attachment_count,
            "comment_count": len(self.comments),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
        if include_children:
            result["checklist"] = [c.to_dict() for c in self.checklist_items]
            result["comments"] = [c.to_dict() for c in self.comments]
            result["attachments"] = [a.to_dict() for a in self.attachments]
        return result

    def __repr__(self):
        return f"<Delivery {self.id}: {self.title[:40]} [{self.status}]>"


class ChecklistItem(db.Model):
    __tablename__ = "delivery_checklist_items"

    id = db.Column(db.String(36), primary_key=True)
    delivery_id = db.Column(
        db.String(36), db.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    label = db.Column(db.String(300), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "completed": bool(self.completed),
            "position": self.position,
        }


class Comment(db.Model):
    """Append-only: removed only together with its delivery."""

    __tablename__ = "delivery_comments"

    id = db.Column(db.String(36), primary_key=True)
    delivery_id = db.Column(
        db.String(36), db.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    author_uid = db.Column(db.String(128), nullable=False)
    author_name = db.Column(db.String(200), nullable=False, default="")
    text = db.Column(db.Text, nullable=False)
    display_date = db.Column(db.String(30), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "author_uid": self.author_uid,
            "author_name": self.author_name,
            "text": self.text,
            "date": self.display_date,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Attachment(db.Model):
    """File reference metadata. The portal never stores the file itself."""

    __tablename__ = "delivery_attachments"

    id = db.Column(db.String(36), primary_key=True)
    delivery_id = db.Column(
        db.String(36), db.ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    url = db.Column(db.String(1000), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    uploader_uid = db.Column(db.String(128), nullable=False)
    uploader_name = db.Column(db.String(200), nullable=False, default="")
    display_date = db.Column(db.String(30), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "notes": self.notes,
            "uploader_uid": self.uploader_uid,
            "uploader_name": self.uploader_name,
            "date": self.display_date,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
