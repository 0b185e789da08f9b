"""
Deliveries blueprint.

Endpoints:
    GET    /api/v1/deliveries                          - scoped listing
    GET    /api/v1/deliveries/<id>                     - scoped detail + allowed_actions
    POST   /api/v1/deliveries                          - admin: create
    PATCH  /api/v1/deliveries/<id>                     - admin: edit
    DELETE /api/v1/deliveries/<id>                     - admin: soft delete
    POST   /api/v1/deliveries/<id>/transition          - {status}: state machine
    POST   /api/v1/deliveries/<id>/comments            - {text}
    POST   /api/v1/deliveries/<id>/attachments         - {name, url?, notes?}
    POST   /api/v1/deliveries/<id>/checklist           - admin: {label}
    PATCH  /api/v1/deliveries/<id>/checklist/<item_id> - {completed}
"""

import logging

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import require_admin, require_caller
from portal.services.delivery_service import DeliveryService
from portal.utils.helpers import json_body, page_params, paged, today_utc

logger = logging.getLogger(__name__)

deliveries_bp = Blueprint("deliveries_bp", __name__, url_prefix="/api/v1")


def _detail(delivery):
    return DeliveryService.serialize(delivery, g.caller, include_children=True)


@deliveries_bp.route("/deliveries", methods=["GET"])
@require_caller
def list_deliveries():
    limit, offset = page_params(request.args)
    items, total = DeliveryService.list_deliveries(
        g.scope,
        project_id=request.args.get("project_id") or None,
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        limit=limit,
        offset=offset,
    )
    today = today_utc()
    return jsonify(paged(
        [DeliveryService.serialize(d, g.caller, today=today) for d in items], total, limit, offset,
    ))


@deliveries_bp.route("/deliveries/<delivery_id>", methods=["GET"])
@require_caller
def get_delivery(delivery_id):
    return jsonify(_detail(DeliveryService.get(g.scope, delivery_id)))


@deliveries_bp.route("/deliveries", methods=["POST"])
@require_admin
def create_delivery():
    delivery = DeliveryService.create(g.caller_profile, json_body(request))
    return jsonify(_detail(delivery)), 201


@deliveries_bp.route("/deliveries/<delivery_id>", methods=["PATCH"])
@require_admin
def update_delivery(delivery_id):
    delivery = DeliveryService.update(g.caller_profile, delivery_id, json_body(request))
    return jsonify(_detail(delivery))


@deliveries_bp.route("/deliveries/<delivery_id>", methods=["DELETE"])
@require_admin
def delete_delivery(delivery_id):
    delivery = DeliveryService.delete(g.caller_profile, delivery_id)
    return jsonify({"deleted": True, "id": delivery.id})


@deliveries_bp.route("/deliveries/<delivery_id>/transition", methods=["POST"])
@require_caller
def transition_delivery(delivery_id):
    data = json_body(request)
    delivery, warnings = DeliveryService.transition(g.caller, g.scope, delivery_id, data.get("status"))
    return jsonify({"delivery": _detail(delivery), "warnings": warnings})


@deliveries_bp.route("/deliveries/<delivery_id>/comments", methods=["POST"])
@require_caller
def add_comment(delivery_id):
    data = json_body(request)
    comment, warnings = DeliveryService.add_comment(
        g.caller_profile, g.caller, g.scope, delivery_id, data.get("text"),
    )
    return jsonify({"comment": comment.to_dict(), "warnings": warnings}), 201


@deliveries_bp.route("/deliveries/<delivery_id>/attachments", methods=["POST"])
@require_caller
def add_attachment(delivery_id):
    attachment = DeliveryService.add_attachment(g.caller_profile, g.scope, delivery_id, json_body(request))
    return jsonify(attachment.to_dict()), 201


@deliveries_bp.route("/deliveries/<delivery_id>/checklist", methods=["POST"])
@require_admin
def add_checklist_item(delivery_id):
    data = json_body(request)
    item = DeliveryService.add_checklist_item(delivery_id, data.get("label"))
    return jsonify(item.to_dict()), 201


@deliveries_bp.route("/deliveries/<delivery_id>/checklist/<item_id>", methods=["PATCH"])
@require_caller
def toggle_checklist_item(delivery_id, item_id):
    data = json_body(request)
    item = DeliveryService.set_checklist_item(g.caller, g.scope, delivery_id, item_id, data.get("completed"))
    return jsonify(item.to_dict())
