"""
Caller decorators for route protection.

    @require_identity   a verified identity token (profile may still be pending)
    @require_caller     a usable profile: active AND status ACTIVE
    @require_admin      a usable ADMIN profile

``require_caller`` sets ``g.caller`` (an access_scope.Caller),
``g.caller_profile`` (the UserProfile) and ``g.scope``.
"""

import functools
import logging

from flask import g

from portal.core.exceptions import AuthenticationRequired, AuthorizationDenied
from portal.repositories import UserRepository
from portal.services.access_scope import Caller, scope_for

logger = logging.getLogger(__name__)


def current_identity():
    identity = getattr(g, "identity", None)
    if identity is None:
        reason = getattr(g, "identity_error", None) or "missing bearer token"
        raise AuthenticationRequired(f"Authentication required ({reason})")
    return identity


def load_caller():
    """Resolve the request's identity to a usable profile and its scope."""
    identity = current_identity()
    profile = UserRepository().get_or_none(identity.uid)
    if profile is None or not profile.is_usable:
        status = profile.status if profile is not None else None
        logger.info("caller_not_usable uid=%s status=%s", identity.uid, status)
        raise AuthorizationDenied(
            "Your account is awaiting approval or is not active",
            details={"status": status},
        )
    g.caller_profile = profile
    g.caller = Caller(id=profile.id, role=profile.role)
    g.scope = scope_for(g.caller)
    return g.caller


def require_identity(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        current_identity()
        return f(*args, **kwargs)
    return decorated


def require_caller(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        load_caller()
        return f(*args, **kwargs)
    return decorated


def require_admin(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        caller = load_caller()
        if not caller.is_admin:
            logger.warning("admin_required_denied uid=%s endpoint=%s", caller.id, f.__name__)
            raise AuthorizationDenied("This action requires an administrator")
        return f(*args, **kwargs)
    return decorated
