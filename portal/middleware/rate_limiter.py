"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in portal/__init__.py with no default limits; this module applies
granular limits per route category.

Usage:
    from portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

SESSION_LIMIT = "30/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def caller_rate_limit_key():
    """Rate limit key: the identity uid when the token verified, else remote IP."""
    identity = getattr(g, "identity", None)
    if identity is not None:
        return f"uid:{identity.uid}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per identity, falling back to remote IP):
        - Session gate:     30/minute  (sign-in storms, profile creation)
        - Mutation-heavy:   60/minute
        - Notifications:    200/minute (polled by the UI)
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("session_bp")
    if bp:
        limiter.limit(SESSION_LIMIT, key_func=caller_rate_limit_key)(bp)

    for bp_name in ("users_bp", "projects_bp", "deliveries_bp", "safety_docs_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=caller_rate_limit_key)(bp)

    bp = app.blueprints.get("notifications_bp")
    if bp:
        limiter.limit(READ_LIMIT, key_func=caller_rate_limit_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: session=%s write=%s read=%s",
        SESSION_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
