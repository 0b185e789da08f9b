"""Delivery repository, including the checklist/comment/attachment sub-records."""

from sqlalchemy import func

from portal.core.exceptions import ValidationError
from portal.models import db
from portal.models.delivery import (
    DELIVERY_PRIORITIES,
    Attachment,
    ChecklistItem,
    Comment,
    Delivery,
)
from portal.repositories.base import Repository, new_id
from portal.services.delivery_state_machine import DELIVERY_STATUSES, STATUS_APROVADO, STATUS_PENDENTE
from portal.utils.helpers import (
    display_timestamp,
    optional_text,
    parse_iso_date,
    require_text,
    validate_choice,
    validate_url,
)


class DeliveryRepository(Repository):
    model = Delivery
    collection = "deliveries"
    label = "Delivery"

    def create(self, data, *, project, provider):
        """Stage a new PENDENTE delivery under ``project`` for ``provider``."""
        checklist = data.get("checklist") or []
        if not isinstance(checklist, (list, tuple)):
            raise ValidationError("checklist must be a list of labels", details={"checklist": "invalid"})
        delivery = Delivery(
            id=new_id(),
            project_id=project.id,
            client_name=project.client,
            project_name=project.name,
            title=require_text(data, "title", max_length=300),
            description=optional_text(data, "description"),
            deadline=parse_iso_date(data.get("deadline"), "deadline", required=True),
            status=STATUS_PENDENTE,
            priority=validate_choice(data.get("priority") or "MEDIA", DELIVERY_PRIORITIES, "priority"),
            provider_uid=provider.id,
            provider_name=provider.name,
        )
        for position, label in enumerate(checklist):
            delivery.checklist_items.append(self._checklist_item(label, position))
        return self.stage_upsert(delivery)

    def update(self, obj, patch):
        clean = {}
        for key, value in patch.items():
            if key == "title":
                clean[key] = require_text(patch, key, max_length=300)
            elif key == "description":
                clean[key] = optional_text(patch, key)
            elif key == "deadline":
                clean[key] = parse_iso_date(value, "deadline", required=True)
            elif key == "priority":
                clean[key] = validate_choice(value, DELIVERY_PRIORITIES, "priority")
            elif key == "status":
                clean[key] = validate_choice(value, DELIVERY_STATUSES, "status")
            elif key in ("provider_uid", "provider_name", "client_name", "project_name"):
                clean[key] = value
            else:
                raise ValidationError(f"Unknown delivery field: {key}", details={key: "unknown"})
        return super().update(obj, clean)

    # ── Sub-records ──────────────────────────────────────────────────────

    def add_comment(self, delivery, *, author, text):
        comment = Comment(
            id=new_id(),
            author_uid=author.id,
            author_name=author.name,
            text=require_text({"text": text}, "text", max_length=5000),
            display_date=display_timestamp(),
        )
        delivery.comments.append(comment)
        self.stage_upsert(delivery)
        return comment

    def add_attachment(self, delivery, data, *, uploader):
        attachment = Attachment(
            id=new_id(),
            name=require_text(data, "name", max_length=300),
            url=validate_url(data.get("url"), "url"),
            notes=optional_text(data, "notes"),
            uploader_uid=uploader.id,
            uploader_name=uploader.name,
            display_date=display_timestamp(),
        )
        delivery.attachments.append(attachment)
        self.stage_upsert(delivery)
        return attachment

    def add_checklist_item(self, delivery, label):
        item = self._checklist_item(label, len(delivery.checklist_items))
        delivery.checklist_items.append(item)
        self.stage_upsert(delivery)
        return item

    def set_checklist_completed(self, delivery, item_id, completed):
        item = next((i for i in delivery.checklist_items if i.id == item_id), None)
        if item is None:
            return None
        if not isinstance(completed, bool):
            raise ValidationError("completed must be true or false", details={"completed": "invalid"})
        item.completed = completed
        self.stage_upsert(delivery)
        return item

    def purge_children(self, delivery):
        """Hard-delete checklist, comments and attachments of a delivery."""
        delivery.checklist_items = []
        delivery.comments = []
        delivery.attachments = []

    @staticmethod
    def _checklist_item(label, position):
        if not isinstance(label, str):
            raise ValidationError("checklist labels must be text", details={"label": "invalid"})
        return ChecklistItem(
            id=new_id(),
            label=require_text({"label": label}, "label", max_length=300),
            completed=False,
            position=position,
        )

    # ── Aggregates ───────────────────────────────────────────────────────

    def live_for_project(self, project_id, *, limit=None):
        query = (
            Delivery.query_active()
            .filter(Delivery.project_id == project_id)
            .order_by(Delivery.created_at, Delivery.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def status_counts(self, project_id):
        """{status: count} over live deliveries of a project."""
        rows = (
            db.session.query(Delivery.status, func.count(Delivery.id))
            .filter(Delivery.project_id == project_id, Delivery.deleted_at.is_(None))
            .group_by(Delivery.status)
            .all()
        )
        return {status: count for status, count in rows}

    def completion_rate(self, project_id):
        counts = self.status_counts(project_id)
        total = sum(counts.values())
        if not total:
            return 0
        return round(counts.get(STATUS_APROVADO, 0) * 100 / total)
