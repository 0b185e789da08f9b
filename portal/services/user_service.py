"""
User Service: admin review of profiles (approve, reject, delete) and
self-service profile edits.
"""

import logging

from portal.core.exceptions import AuthorizationDenied, ValidationError
from portal.models.project import ProjectMember
from portal.models.user import (
    STATUS_ACTIVE,
    STATUS_PENDING,
    STATUS_REJECTED,
    USER_ROLES,
    USER_STATUSES,
    UserProfile,
)
from portal.repositories import UserRepository, commit_or_raise
from portal.utils.helpers import utcnow, validate_choice

logger = logging.getLogger(__name__)

_SELF_EDITABLE = ("name", "pix_key", "photo_url")


# ═══════════════════════════════════════════════════════════════
# Listing
# ═══════════════════════════════════════════════════════════════
def list_users(scope, *, status=None, role=None, limit=None, offset=0):
    criteria = []
    if status:
        criteria.append(UserProfile.status == validate_choice(status, USER_STATUSES, "status"))
    if role:
        criteria.append(UserProfile.role == validate_choice(role, USER_ROLES, "role"))
    return UserRepository().list_scoped(
        scope.users, criteria=criteria, limit=limit, offset=offset,
        order_by=UserProfile.name,
    )


def list_pending(scope, *, limit=None, offset=0):
    return list_users(scope, status=STATUS_PENDING, limit=limit, offset=offset)


# ═══════════════════════════════════════════════════════════════
# Admin review
# ═══════════════════════════════════════════════════════════════
def approve_user(actor, user_id, role):
    """PENDING/REJECTED → ACTIVE with the given role."""
    role = validate_choice(role, USER_ROLES, "role")
    repo = UserRepository()
    user = repo.get(user_id)
    repo.update(user, {
        "status": STATUS_ACTIVE,
        "active": True,
        "role": role,
        "approved_at": utcnow(),
    })
    commit_or_raise("approve_user")
    logger.info("user_approved uid=%s role=%s by=%s", user.id, role, actor.id,
                extra={"event_type": "user_approved", "user_id": user.id})
    return user


def reject_user(actor, user_id):
    """→ REJECTED, inactive. Generates no notification."""
    if user_id == actor.id:
        raise AuthorizationDenied("You cannot reject your own account")
    repo = UserRepository()
    user = repo.get(user_id)
    repo.update(user, {"status": STATUS_REJECTED, "active": False})
    commit_or_raise("reject_user")
    logger.info("user_rejected uid=%s by=%s", user.id, actor.id,
                extra={"event_type": "user_rejected", "user_id": user.id})
    return user


def delete_user(actor, user_id, *, hard=False):
    """Soft delete (idempotent) or, with ``hard``, physical removal.

    Returns:
        The profile dict as it was last stored.
    """
    if user_id == actor.id:
        raise AuthorizationDenied("You cannot delete your own account")
    repo = UserRepository()
    user = repo.get(user_id, include_deleted=True)
    if hard:
        snapshot = user.to_dict()
        ProjectMember.query.filter_by(user_uid=user.id).delete(synchronize_session=False)
        repo.hard_delete(user)
        commit_or_raise("hard_delete_user")
        logger.info("user_hard_deleted uid=%s by=%s", user_id, actor.id,
                    extra={"event_type": "user_hard_deleted", "user_id": user_id})
        return snapshot

    if repo.soft_delete(user):
        commit_or_raise("delete_user")
        logger.info("user_deleted uid=%s by=%s", user.id, actor.id,
                    extra={"event_type": "user_deleted", "user_id": user.id})
    else:
        logger.debug("user_delete_noop uid=%s already deleted", user.id)
    return user.to_dict()


# ═══════════════════════════════════════════════════════════════
# Self service
# ═══════════════════════════════════════════════════════════════
def update_own_profile(profile, data):
    forbidden = sorted(set(data) - set(_SELF_EDITABLE))
    if forbidden:
        raise ValidationError(
            f"These fields cannot be edited here: {', '.join(forbidden)}",
            details={f: "not_editable" for f in forbidden},
        )
    if not data:
        return profile
    UserRepository().update(profile, dict(data))
    commit_or_raise("update_own_profile")
    return profile
