"""
Safety documents blueprint (per-owner layout).

Endpoints:
    GET    /api/v1/providers/<uid>/safety-docs           - admin or owner
    POST   /api/v1/providers/<uid>/safety-docs           - admin or owner
    DELETE /api/v1/providers/<uid>/safety-docs/<doc_id>  - admin or owner
"""

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import require_caller
from portal.services import safety_doc_service
from portal.utils.helpers import json_body, today_utc

safety_docs_bp = Blueprint("safety_docs_bp", __name__, url_prefix="/api/v1")


@safety_docs_bp.route("/providers/<owner_uid>/safety-docs", methods=["GET"])
@require_caller
def list_safety_docs(owner_uid):
    docs = safety_doc_service.list_docs(g.caller, owner_uid)
    today = today_utc()
    return jsonify({"items": [d.to_dict(today=today) for d in docs], "total": len(docs)})


@safety_docs_bp.route("/providers/<owner_uid>/safety-docs", methods=["POST"])
@require_caller
def create_safety_doc(owner_uid):
    doc = safety_doc_service.create_doc(g.caller, g.caller_profile, owner_uid, json_body(request))
    return jsonify(doc.to_dict(today=today_utc())), 201


@safety_docs_bp.route("/providers/<owner_uid>/safety-docs/<doc_id>", methods=["DELETE"])
@require_caller
def delete_safety_doc(owner_uid, doc_id):
    safety_doc_service.delete_doc(g.caller, owner_uid, doc_id)
    return jsonify({"deleted": True, "id": doc_id})
