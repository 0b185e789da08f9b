"""Project repository. Membership is the ``contains`` scope for contractors."""

from portal.core.exceptions import ValidationError
from portal.models.project import PROJECT_STATUSES, Project, ProjectMember
from portal.repositories.base import Repository, new_id
from portal.utils.helpers import normalize_text, optional_text, require_text, validate_choice, validate_url


def clean_member_uids(value):
    """Shape-check a member list: a list of non-empty id strings."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("member_uids must be a list", details={"member_uids": "invalid"})
    if any(not isinstance(v, str) for v in value):
        raise ValidationError("member_uids must contain user id strings", details={"member_uids": "invalid"})
    uids = [normalize_text(v) for v in value]
    if any(not uid for uid in uids):
        raise ValidationError("member_uids must not contain empty ids", details={"member_uids": "invalid"})
    return uids


class ProjectRepository(Repository):
    model = Project
    collection = "projects"
    label = "Project"

    def contains_criterion(self, flt):
        if flt.field != "member_uids":
            return super().contains_criterion(flt)
        return Project.members.any(ProjectMember.user_uid == flt.value)

    def create(self, data, *, manager_uid, manager_name):
        project = Project(
            id=new_id(),
            client=require_text(data, "client", max_length=200),
            name=require_text(data, "name", max_length=200),
            description=optional_text(data, "description"),
            external_link=validate_url(data.get("external_link"), "external_link"),
            manager_uid=manager_uid,
            manager_name=manager_name or "",
            status=validate_choice(data.get("status") or "EM_ANDAMENTO", PROJECT_STATUSES, "status"),
            completion_rate=0,
        )
        project.set_members(clean_member_uids(data.get("member_uids")))
        return self.stage_upsert(project)

    def update(self, obj, patch):
        clean = {}
        members = None
        for key, value in patch.items():
            if key in ("client", "name"):
                clean[key] = require_text(patch, key, max_length=200)
            elif key == "description":
                clean[key] = optional_text(patch, key)
            elif key == "external_link":
                clean[key] = validate_url(value, key)
            elif key == "status":
                clean[key] = validate_choice(value, PROJECT_STATUSES, "status")
            elif key == "completion_rate":
                clean[key] = int(value)
            elif key == "member_uids":
                members = clean_member_uids(value)
            else:
                raise ValidationError(f"Unknown project field: {key}", details={key: "unknown"})
        if members is not None:
            obj.set_members(members)
        return super().update(obj, clean)
