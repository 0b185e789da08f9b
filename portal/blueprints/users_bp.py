"""
Users blueprint: admin review of profiles.

Endpoints:
    GET    /api/v1/users                 - scoped listing (contractors: ACTIVE users, public fields only)
    GET    /api/v1/users/pending         - admin: approval queue
    POST   /api/v1/users/<id>/approve    - admin: {role} → ACTIVE
    POST   /api/v1/users/<id>/reject     - admin: → REJECTED
    DELETE /api/v1/users/<id>[?hard=true] - admin: soft (default) or hard delete
"""

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import require_admin, require_caller
from portal.models.user import UserProfile
from portal.services import user_service
from portal.utils.helpers import json_body, page_params, paged

users_bp = Blueprint("users_bp", __name__, url_prefix="/api/v1")


@users_bp.route("/users", methods=["GET"])
@require_caller
def list_users():
    limit, offset = page_params(request.args)
    items, total = user_service.list_users(
        g.scope,
        status=request.args.get("status") or None,
        role=request.args.get("role") or None,
        limit=limit,
        offset=offset,
    )
    serialize = UserProfile.to_dict if g.caller.is_admin else UserProfile.to_public_dict
    return jsonify(paged([serialize(u) for u in items], total, limit, offset))


@users_bp.route("/users/pending", methods=["GET"])
@require_admin
def list_pending_users():
    limit, offset = page_params(request.args)
    items, total = user_service.list_pending(g.scope, limit=limit, offset=offset)
    return jsonify(paged([u.to_dict() for u in items], total, limit, offset))


@users_bp.route("/users/<user_id>/approve", methods=["POST"])
@require_admin
def approve_user(user_id):
    data = json_body(request)
    user = user_service.approve_user(g.caller_profile, user_id, data.get("role"))
    return jsonify(user.to_dict())


@users_bp.route("/users/<user_id>/reject", methods=["POST"])
@require_admin
def reject_user(user_id):
    user = user_service.reject_user(g.caller_profile, user_id)
    return jsonify(user.to_dict())


@users_bp.route("/users/<user_id>", methods=["DELETE"])
@require_admin
def delete_user(user_id):
    hard = request.args.get("hard", "").lower() in ("1", "true", "yes")
    record = user_service.delete_user(g.caller_profile, user_id, hard=hard)
    return jsonify({"deleted": True, "hard": hard, "user": record})
