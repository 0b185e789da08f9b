"""
Identity middleware: parses the identity provider's ID token from the
Authorization header and sets ``g.identity``.

The token is only decoded here. Whether the request may proceed is
decided by the decorators in ``portal.middleware.caller_required``.

    Authorization: Bearer <id token>  →  g.identity = Identity(uid, email, name, photo_url)
    missing / invalid / expired       →  g.identity = None, g.identity_error = reason
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from portal.services.session_gate import Identity

logger = logging.getLogger(__name__)

# Paths that never carry an identity
IDENTITY_SKIP_PREFIXES = (
    "/api/v1/health",
)


def decode_identity_token(token):
    """Verify an ID token and return its claims.

    Raises:
        jwt.InvalidTokenError: bad signature, expired, wrong audience,
            or no ``sub`` claim.
    """
    cfg = current_app.config
    secret = cfg.get("IDENTITY_TOKEN_SECRET") or cfg["SECRET_KEY"]
    audience = cfg.get("IDENTITY_TOKEN_AUDIENCE")
    options = {"require": ["sub"]}
    if not audience:
        options["verify_aud"] = False
    return pyjwt.decode(
        token,
        secret,
        algorithms=cfg.get("IDENTITY_TOKEN_ALGORITHMS") or ["HS256"],
        audience=audience or None,
        options=options,
    )


def init_identity_middleware(app):
    """Register the identity parser as a before_request hook."""

    @app.before_request
    def _parse_identity():
        g.identity = None
        g.identity_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        if path.startswith(IDENTITY_SKIP_PREFIXES):
            return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            g.identity_error = "missing bearer token"
            return

        try:
            claims = decode_identity_token(auth_header[7:])
        except pyjwt.ExpiredSignatureError:
            g.identity_error = "token expired"
            return
        except pyjwt.InvalidTokenError as exc:
            logger.debug("identity_token_rejected path=%s reason=%s", path, exc)
            g.identity_error = "invalid token"
            return

        g.identity = Identity(
            uid=str(claims["sub"]),
            email=claims.get("email") or "",
            name=claims.get("name") or "",
            photo_url=claims.get("picture"),
        )
