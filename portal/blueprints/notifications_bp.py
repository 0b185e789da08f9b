"""
Notifications blueprint: the caller's own inbox.

Endpoints:
    GET  /api/v1/notifications               - ?unread_only=true&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import require_caller
from portal.services.notification import NotificationService
from portal.utils.helpers import page_params, paged

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api/v1")


@notifications_bp.route("/notifications", methods=["GET"])
@require_caller
def list_notifications():
    limit, offset = page_params(request.args)
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    items, total = NotificationService.list_for_recipient(
        g.caller.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify(paged([n.to_dict() for n in items], total, limit, offset))


@notifications_bp.route("/notifications/unread-count", methods=["GET"])
@require_caller
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(g.caller.id)})


@notifications_bp.route("/notifications/<notification_id>/read", methods=["POST"])
@require_caller
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, g.caller.id)
    return jsonify(notif.to_dict())


@notifications_bp.route("/notifications/read-all", methods=["POST"])
@require_caller
def mark_all_read():
    return jsonify({"marked_read": NotificationService.mark_all_read(g.caller.id)})
