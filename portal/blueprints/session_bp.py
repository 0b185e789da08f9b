"""
Session blueprint: the Session/Profile gate over HTTP.

Endpoints:
    GET   /api/v1/session          - load or create the caller's profile, return entry view
    POST  /api/v1/session/profile  - self-registration details on a pending profile
    PATCH /api/v1/me               - caller edits own name / payment key / photo
"""

import logging

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import current_identity, require_caller, require_identity
from portal.repositories import UserRepository
from portal.services import session_gate, user_service
from portal.utils.helpers import json_body

logger = logging.getLogger(__name__)

session_bp = Blueprint("session_bp", __name__, url_prefix="/api/v1")


@session_bp.route("/session", methods=["GET"])
@require_identity
def get_session():
    profile, view = session_gate.open_session(current_identity())
    return jsonify(session_gate.session_payload(profile, view))


@session_bp.route("/session/profile", methods=["POST"])
@require_identity
def register_profile():
    identity = current_identity()
    data = json_body(request)
    profile = UserRepository().get_or_none(identity.uid, include_deleted=True)
    if profile is None:
        profile, _ = session_gate.open_session(identity)
    session_gate.register_profile(profile, data)
    view = session_gate.entry_view(profile)
    return jsonify(session_gate.session_payload(profile, view))


@session_bp.route("/me", methods=["PATCH"])
@require_caller
def update_me():
    profile = user_service.update_own_profile(g.caller_profile, json_body(request))
    return jsonify(profile.to_dict())
