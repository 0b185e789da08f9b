"""
Session/Profile gate.

Maps an identity issued by the external provider onto a domain profile and
decides which top-level view the caller may enter:

    no profile yet                → create PENDING/PRESTADOR/inactive → "pending"
    status != ACTIVE or !active   → "pending"
    usable ADMIN                  → "admin"
    usable PRESTADOR              → "contractor"
"""

import logging
from dataclasses import dataclass

from portal.core.exceptions import ValidationError
from portal.models.user import ROLE_ADMIN
from portal.repositories import UserRepository, commit_or_raise
from portal.utils.helpers import normalize_text

logger = logging.getLogger(__name__)

VIEW_PENDING = "pending"
VIEW_ADMIN = "admin"
VIEW_CONTRACTOR = "contractor"

# view -> what the UI may offer
VIEW_CAPABILITIES = {
    VIEW_PENDING: [],
    VIEW_ADMIN: [
        "users.review", "users.delete", "projects.manage", "deliveries.manage",
        "deliveries.review", "safety_docs.manage_all",
    ],
    VIEW_CONTRACTOR: [
        "deliveries.submit", "deliveries.comment", "deliveries.attach", "safety_docs.manage_own",
    ],
}


@dataclass(frozen=True)
class Identity:
    """What the core receives from the identity provider."""

    uid: str
    email: str = ""
    name: str = ""
    photo_url: str | None = None

    @property
    def fallback_name(self):
        name = normalize_text(self.name)
        if name:
            return name
        local = (self.email or "").split("@", 1)[0]
        return normalize_text(local) or "Usuário"


# ═══════════════════════════════════════════════════════════════
# Gate
# ═══════════════════════════════════════════════════════════════
def entry_view(profile):
    if profile is None or not profile.is_usable:
        return VIEW_PENDING
    return VIEW_ADMIN if profile.role == ROLE_ADMIN else VIEW_CONTRACTOR


def open_session(identity):
    """Load (or create on first sight) the profile behind an identity.

    Returns:
        (profile, view)
    """
    repo = UserRepository()
    profile = repo.get_or_none(identity.uid, include_deleted=True)
    if profile is None:
        profile = repo.create(
            identity.uid, email=identity.email, name=identity.fallback_name, photo_url=identity.photo_url,
        )
        commit_or_raise("create_profile")
        logger.info("profile_created uid=%s status=%s", profile.id, profile.status,
                    extra={"event_type": "profile_created", "user_id": profile.id})
        return profile, VIEW_PENDING

    # Provider-side values win when the provider supplies them (SSO sign-in).
    patch = {}
    if identity.email and identity.email != profile.email:
        patch["email"] = identity.email
    if normalize_text(identity.name) and normalize_text(identity.name) != profile.name:
        patch["name"] = identity.name
    if identity.photo_url and identity.photo_url != profile.photo_url:
        patch["photo_url"] = identity.photo_url
    if patch and not profile.is_deleted:
        repo.update(profile, patch)
        commit_or_raise("merge_profile")

    view = entry_view(profile)
    logger.debug("session_opened uid=%s view=%s", profile.id, view)
    return profile, view


def register_profile(profile, data):
    """Self-registration details for a pending profile: display name and payment key.

    Never touches role, status or active.
    """
    if profile.is_deleted:
        raise ValidationError("This account was removed", details={"status": profile.status})
    patch = {"name": data.get("name")}
    if "pix_key" in data:
        patch["pix_key"] = data.get("pix_key")
    if data.get("email"):
        patch["email"] = data["email"]
    UserRepository().update(profile, patch)
    commit_or_raise("register_profile")
    logger.info("profile_registered uid=%s", profile.id,
                extra={"event_type": "profile_registered", "user_id": profile.id})
    return profile


def session_payload(profile, view):
    return {
        "profile": profile.to_dict(),
        "view": view,
        "capabilities": list(VIEW_CAPABILITIES[view]),
    }
