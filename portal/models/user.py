"""
Contractor Delivery Portal
User profile model.

Models:
    - UserProfile: identity-linked profile gated by admin approval
"""

from datetime import datetime, timezone

from portal.models import db
from portal.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────────

ROLE_ADMIN = "ADMIN"
ROLE_PRESTADOR = "PRESTADOR"
USER_ROLES = (ROLE_ADMIN, ROLE_PRESTADOR)

STATUS_PENDING = "PENDING"
STATUS_ACTIVE = "ACTIVE"
STATUS_REJECTED = "REJECTED"
STATUS_DELETED = "DELETED"
USER_STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_REJECTED, STATUS_DELETED)

# What a contractor may see of another account
PUBLIC_USER_FIELDS = ("id", "name", "role", "photo_url")


def public_user_fields(record):
    return {key: record.get(key) for key in PUBLIC_USER_FIELDS}


class UserProfile(SoftDeleteMixin, db.Model):
    """
    Domain profile for an identity issued by the external identity provider.

    Business rules:
    - Created PENDING, inactive, with role PRESTADOR on first sign-in.
    - Usable (may enter the working views) only when active AND status ACTIVE.
    - Role, status and active are changed by an admin only.
    - Soft delete sets status DELETED; hard delete is an explicit admin action.
    """

    __tablename__ = "users"

    id = db.Column(db.String(128), primary_key=True, comment="Identity provider uid")
    email = db.Column(db.String(255), nullable=False, default="")
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_PRESTADOR, index=True)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    active = db.Column(db.Boolean, nullable=False, default=False)

    pix_key = db.Column(db.String(200), nullable=True, comment="Payment key")
    photo_url = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_usable(self):
        return bool(self.active) and self.status == STATUS_ACTIVE

    def soft_delete(self):
        changed = super().soft_delete()
        if changed:
            self.status = STATUS_DELETED
            self.active = False
        return changed

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "status": self.status,
            "active": bool(self.active),
            "pix_key": self.pix_key,
            "photo_url": self.photo_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def to_public_dict(self):
        """Directory view for non-admin callers: no email, payment key or review dates."""
        return public_user_fields(self.to_dict())

    def __repr__(self):
        return f"<UserProfile {self.id}: {self.role}/{self.status}>"
