"""Project domain model: a client engagement and its eligible contractors."""

from datetime import datetime, timezone

from portal.models import db
from portal.models.soft_delete import SoftDeleteMixin

PROJECT_STATUSES = ("EM_ANDAMENTO", "PAUSADO", "CONCLUIDO", "CANCELADO")
TERMINAL_PROJECT_STATUSES = frozenset({"CONCLUIDO", "CANCELADO"})


class Project(SoftDeleteMixin, db.Model):
    """Client engagement grouping deliveries.

    ``member_uids`` is the exact, ordered set of contractors that may be
    assigned deliveries under this project.
    """

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True)
    client = db.Column(db.String(200), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    external_link = db.Column(db.String(1000), nullable=True)

    manager_name = db.Column(db.String(200), nullable=False, default="")
    manager_uid = db.Column(db.String(128), nullable=False, index=True)

    status = db.Column(
        db.String(20), nullable=False, default="EM_ANDAMENTO",
        comment="EM_ANDAMENTO | PAUSADO | CONCLUIDO | CANCELADO",
    )
    completion_rate = db.Column(db.Integer, nullable=False, default=0, comment="0-100")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    members = db.relationship(
        "ProjectMember",
        order_by="ProjectMember.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def member_uids(self):
        return [m.user_uid for m in self.members]

    @property
    def is_terminal(self):
        return self.status in TERMINAL_PROJECT_STATUSES

    def set_members(self, uids):
        """Replace the member list, keeping order and dropping duplicates."""
        existing = {m.user_uid: m for m in self.members}
        ordered = []
        seen = set()
        for uid in uids:
            if uid in seen:
                continue
            seen.add(uid)
            member = existing.get(uid) or ProjectMember(user_uid=uid)
            member.position = len(ordered)
            ordered.append(member)
        self.members = ordered

    def to_dict(self):
        return {
            "id": self.id,
            "client": self.client,
            "name": self.name,
            "description": self.description,
            "external_link": self.external_link,
            "manager_name": self.manager_name,
            "manager_uid": self.manager_uid,
            "member_uids": self.member_uids,
            "status": self.status,
            "completion_rate": self.completion_rate,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.client} / {self.name}>"


class ProjectMember(db.Model):
    """Ordered membership of a contractor in a project."""

    __tablename__ = "project_members"

    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True,
    )
    user_uid = db.Column(db.String(128), primary_key=True, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ProjectMember {self.project_id}:{self.user_uid}>"
