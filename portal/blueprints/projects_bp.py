"""
Projects blueprint.

Endpoints:
    GET    /api/v1/projects        - scoped listing (contractors: member projects only)
    GET    /api/v1/projects/<id>   - scoped detail with delivery counts
    POST   /api/v1/projects        - admin: create
    PATCH  /api/v1/projects/<id>   - admin: edit fields / members / status
    DELETE /api/v1/projects/<id>   - admin: soft delete + delivery cascade (returns warnings)
"""

import logging

from flask import Blueprint, g, jsonify, request

from portal.middleware.caller_required import require_admin, require_caller
from portal.services import project_service
from portal.utils.helpers import json_body, page_params, paged

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects_bp", __name__, url_prefix="/api/v1")


@projects_bp.route("/projects", methods=["GET"])
@require_caller
def list_projects():
    limit, offset = page_params(request.args)
    items, total = project_service.list_projects(
        g.scope, status=request.args.get("status") or None, limit=limit, offset=offset,
    )
    return jsonify(paged([p.to_dict() for p in items], total, limit, offset))


@projects_bp.route("/projects/<project_id>", methods=["GET"])
@require_caller
def get_project(project_id):
    project = project_service.get_project(g.scope, project_id)
    return jsonify(project_service.project_detail(project))


@projects_bp.route("/projects", methods=["POST"])
@require_admin
def create_project():
    project = project_service.create_project(g.caller_profile, json_body(request))
    return jsonify(project.to_dict()), 201


@projects_bp.route("/projects/<project_id>", methods=["PATCH"])
@require_admin
def update_project(project_id):
    project = project_service.update_project(g.caller_profile, project_id, json_body(request))
    return jsonify(project.to_dict())


@projects_bp.route("/projects/<project_id>", methods=["DELETE"])
@require_admin
def delete_project(project_id):
    project, warnings = project_service.delete_project(g.caller_profile, project_id)
    return jsonify({"deleted": True, "project": project.to_dict(), "warnings": warnings})
