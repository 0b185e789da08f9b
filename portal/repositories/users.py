"""User profile repository."""

import logging

from email_validator import EmailNotValidError, validate_email

from portal.core.exceptions import ValidationError
from portal.models.user import (
    ROLE_ADMIN,
    ROLE_PRESTADOR,
    STATUS_ACTIVE,
    STATUS_PENDING,
    USER_ROLES,
    USER_STATUSES,
    UserProfile,
)
from portal.repositories.base import Repository
from portal.utils.helpers import normalize_text, validate_choice, validate_url

logger = logging.getLogger(__name__)


def normalize_email(email):
    """Return the normalized address, "" for empty input.

    Raises:
        ValidationError: the address is syntactically invalid.
    """
    email = normalize_text(email)
    if not email:
        return ""
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid"}) from exc


class UserRepository(Repository):
    model = UserProfile
    collection = "users"
    label = "User"

    def create(self, uid, *, email="", name, photo_url=None):
        """Stage a new PENDING, inactive PRESTADOR profile for an identity uid."""
        name = normalize_text(name)
        if not uid:
            raise ValidationError("uid is required", details={"uid": "required"})
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        profile = UserProfile(
            id=uid,
            email=normalize_email(email),
            name=name[:200],
            role=ROLE_PRESTADOR,
            status=STATUS_PENDING,
            active=False,
            photo_url=validate_url(photo_url, "photo_url"),
        )
        return self.stage_upsert(profile)

    def update(self, obj, patch):
        clean = {}
        for key, value in patch.items():
            if key == "email":
                clean[key] = normalize_email(value)
            elif key == "name":
                value = normalize_text(value)
                if not value:
                    raise ValidationError("name is required", details={"name": "required"})
                clean[key] = value[:200]
            elif key == "pix_key":
                clean[key] = normalize_text(value) or None
            elif key == "photo_url":
                clean[key] = validate_url(value, "photo_url")
            elif key == "role":
                clean[key] = validate_choice(value, USER_ROLES, "role")
            elif key == "status":
                clean[key] = validate_choice(value, USER_STATUSES, "status")
            elif key in ("active", "approved_at"):
                clean[key] = value
            else:
                raise ValidationError(f"Unknown user field: {key}", details={key: "unknown"})
        return super().update(obj, clean)

    def active_admins(self):
        return (
            UserProfile.query_active()
            .filter(
                UserProfile.role == ROLE_ADMIN,
                UserProfile.active.is_(True),
                UserProfile.status == STATUS_ACTIVE,
            )
            .order_by(UserProfile.created_at)
            .all()
        )

    def contractors(self, uids, *, usable_only=False):
        """Non-deleted PRESTADOR profiles among ``uids``, keyed by uid."""
        if not uids:
            return {}
        query = UserProfile.query_active().filter(
            UserProfile.id.in_(list(uids)),
            UserProfile.role == ROLE_PRESTADOR,
        )
        if usable_only:
            query = query.filter(UserProfile.active.is_(True), UserProfile.status == STATUS_ACTIVE)
        rows = query.all()
        return {row.id: row for row in rows}
