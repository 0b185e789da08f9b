"""Project service: admin CRUD, membership rules, completion rate, deletion cascade."""

from __future__ import annotations

import logging

from flask import current_app

from portal.core.exceptions import PartialCascadeFailure, StoreUnavailable, ValidationError
from portal.models import db
from portal.models.project import PROJECT_STATUSES, Project
from portal.repositories import (
    DeliveryRepository,
    ProjectRepository,
    UserRepository,
    commit_or_raise,
    discard_staged,
)
from portal.repositories.projects import clean_member_uids
from portal.utils.helpers import validate_choice

logger = logging.getLogger(__name__)


def _check_members(raw_member_uids) -> list:
    """Every member must be an existing, non-deleted PRESTADOR profile.

    The list is shape-checked before any lookup. Returns the cleaned ids.
    """
    member_uids = clean_member_uids(raw_member_uids)
    if not member_uids:
        return member_uids
    known = UserRepository().contractors(member_uids)
    unknown = [uid for uid in member_uids if uid not in known]
    if unknown:
        raise ValidationError(
            "member_uids must reference existing contractor accounts",
            details={"member_uids": unknown},
        )
    return member_uids


def list_projects(scope, *, status: str | None = None, limit=None, offset=0):
    criteria = []
    if status:
        criteria.append(Project.status == validate_choice(status, PROJECT_STATUSES, "status"))
    return ProjectRepository().list_scoped(scope.projects, criteria=criteria, limit=limit, offset=offset)


def get_project(scope, project_id: str) -> Project:
    return ProjectRepository().get_scoped(project_id, scope.projects)


def project_detail(project: Project) -> dict:
    counts = DeliveryRepository().status_counts(project.id)
    result = project.to_dict()
    result["delivery_counts"] = dict(counts, total=sum(counts.values()))
    return result


def create_project(actor, data: dict) -> Project:
    data = dict(data, member_uids=_check_members(data.get("member_uids")))
    project = ProjectRepository().create(data, manager_uid=actor.id, manager_name=actor.name)
    commit_or_raise("create_project")
    logger.info("project_created id=%s members=%d by=%s", project.id, len(project.member_uids), actor.id,
                extra={"event_type": "project_created", "project_id": project.id})
    return project


def update_project(actor, project_id: str, data: dict) -> Project:
    repo = ProjectRepository()
    project = repo.get(project_id)
    patch = {k: v for k, v in data.items() if k != "completion_rate"}
    if "member_uids" in patch:
        patch["member_uids"] = _check_members(patch["member_uids"])
    repo.update(project, patch)
    commit_or_raise("update_project")
    logger.info("project_updated id=%s fields=%s by=%s", project.id, ",".join(sorted(patch)), actor.id,
                extra={"event_type": "project_updated", "project_id": project.id})
    return project


def refresh_completion_rate(project_id: str) -> int | None:
    """Recompute approved / live deliveries x 100 and stage it on the project.

    Runs inside the caller's unit of work; the caller commits.
    """
    repo = ProjectRepository()
    project = repo.get_or_none(project_id)
    if project is None:
        return None
    rate = DeliveryRepository().completion_rate(project_id)
    if rate != project.completion_rate:
        repo.update(project, {"completion_rate": rate})
    return rate


def delete_project(actor, project_id: str):
    """Soft-delete a project, then cascade over its deliveries in chunks.

    Each chunk soft-deletes its deliveries and hard-deletes their sub-records
    in one commit. A chunk the store rejects stops the cascade and is
    reported as a warning; the project stays deleted. Deleting again sweeps
    whatever the previous attempt left behind.

    Returns:
        (project, warnings)
    """
    repo = ProjectRepository()
    project = repo.get(project_id, include_deleted=True)
    if repo.soft_delete(project):
        commit_or_raise("delete_project")
        logger.info("project_deleted id=%s by=%s", project.id, actor.id,
                    extra={"event_type": "project_deleted", "project_id": project.id})

    chunk_size = max(1, int(current_app.config.get("CASCADE_CHUNK_SIZE", 200)))
    deliveries = DeliveryRepository()
    completed = 0
    warnings = []
    while True:
        chunk = deliveries.live_for_project(project.id, limit=chunk_size)
        if not chunk:
            break
        for delivery in chunk:
            deliveries.purge_children(delivery)
            deliveries.soft_delete(delivery)
        try:
            commit_or_raise("delete_project_cascade")
        except StoreUnavailable as exc:
            discard_staged()
            db.session.rollback()
            remaining = len(deliveries.live_for_project(project.id))
            failure = PartialCascadeFailure(
                "delete_project", completed=completed, failed=remaining, reason=exc.message,
            )
            logger.warning("project_cascade_partial id=%s completed=%d remaining=%d",
                           project.id, completed, remaining,
                           extra={"event_type": "project_cascade_partial", "project_id": project.id})
            warnings.append(failure.to_dict())
            break
        completed += len(chunk)

    if completed:
        logger.info("project_cascade id=%s deliveries_deleted=%d", project.id, completed,
                    extra={"event_type": "project_cascade", "project_id": project.id})
    return project, warnings
