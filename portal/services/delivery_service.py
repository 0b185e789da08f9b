"""
Contractor Delivery Portal
Delivery Service.

Admin CRUD, the status transition entry point, and the append-only
sub-records (comments, attachments, checklist). Every read and write goes
through the caller's access scope, so a contractor asking for someone
else's delivery gets NotFound.

Transition flow:
    scope check → state machine → write + completion rate → commit → fan-out

Fan-out runs after the commit and only ever adds warnings.
"""

import logging

from flask import current_app

from portal.core.exceptions import AuthorizationDenied, NotFoundError, TransitionDenied, ValidationError
from portal.models.delivery import DELIVERY_PRIORITIES, Delivery
from portal.models.notification import NOTIF_COMMENT
from portal.models.user import ROLE_PRESTADOR
from portal.repositories import DeliveryRepository, ProjectRepository, UserRepository, commit_or_raise
from portal.services import project_service
from portal.services.access_scope import MATCH_ALL
from portal.services.delivery_state_machine import (
    DISPLAY_STATUSES,
    STATUS_APROVADO,
    STATUS_ATRASADO,
    allowed_actions,
    check_transition,
    effective_status,
    is_overdue,
    notification_type_for,
)
from portal.services.notification import FanOutEvent, NotificationService
from portal.utils.helpers import today_utc, validate_choice

logger = logging.getLogger(__name__)

_EDITABLE = ("title", "description", "deadline", "priority", "provider_uid")


def _require_attachment():
    return bool(current_app.config.get("REVIEW_REQUIRES_ATTACHMENT", True))


def _assignable_provider(project, provider_uid):
    """The provider must be a project member AND a usable contractor."""
    if not provider_uid:
        raise ValidationError("provider_uid is required", details={"provider_uid": "required"})
    if provider_uid not in project.member_uids:
        raise ValidationError(
            "provider_uid must be a member of the project",
            details={"provider_uid": "not_a_member"},
        )
    provider = UserRepository().contractors([provider_uid], usable_only=True).get(provider_uid)
    if provider is None:
        raise ValidationError(
            "provider_uid must be an active contractor account",
            details={"provider_uid": "inactive"},
        )
    return provider


class DeliveryService:
    """Stateless service class for delivery operations."""

    # ── Reads ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_deliveries(scope, *, project_id=None, status=None, priority=None, limit=None, offset=0):
        criteria = []
        if project_id:
            criteria.append(Delivery.project_id == project_id)
        if priority:
            criteria.append(Delivery.priority == validate_choice(priority, DELIVERY_PRIORITIES, "priority"))
        if status:
            validate_choice(status, DISPLAY_STATUSES, "status")
            today = today_utc()
            if status == STATUS_ATRASADO:
                criteria.append(Delivery.status != STATUS_APROVADO)
                criteria.append(Delivery.deadline < today)
            elif status == STATUS_APROVADO:
                criteria.append(Delivery.status == status)
            else:
                # Overdue deliveries display as ATRASADO, not their stored status
                criteria.append(Delivery.status == status)
                criteria.append(Delivery.deadline >= today)
        return DeliveryRepository().list_scoped(
            scope.deliveries, criteria=criteria, limit=limit, offset=offset,
            order_by=Delivery.deadline.asc(),
        )

    @staticmethod
    def get(scope, delivery_id):
        return DeliveryRepository().get_scoped(delivery_id, scope.deliveries)

    @staticmethod
    def serialize(delivery, caller, *, include_children=False, today=None):
        today = today or today_utc()
        result = delivery.to_dict(include_children=include_children)
        result["display_status"] = effective_status(delivery.status, delivery.deadline, today)
        result["is_overdue"] = is_overdue(delivery.status, delivery.deadline, today)
        if include_children:
            result["allowed_actions"] = allowed_actions(
                delivery, caller, require_attachment=_require_attachment(),
            )
        return result

    # ── Admin CRUD ────────────────────────────────────────────────────────

    @staticmethod
    def create(actor, data):
        """Create a PENDENTE delivery. Validation happens before any write."""
        project_id = data.get("project_id")
        if not project_id:
            raise ValidationError("project_id is required", details={"project_id": "required"})
        project = ProjectRepository().get_or_none(project_id)
        if project is None:
            raise ValidationError("project_id does not reference a live project",
                                  details={"project_id": "not_found"})
        provider = _assignable_provider(project, data.get("provider_uid"))

        delivery = DeliveryRepository().create(data, project=project, provider=provider)
        project_service.refresh_completion_rate(project.id)
        commit_or_raise("create_delivery")
        logger.info("delivery_created id=%s project_id=%s provider=%s by=%s",
                    delivery.id, project.id, provider.id, actor.id,
                    extra={"event_type": "delivery_created", "delivery_id": delivery.id, "project_id": project.id})
        return delivery

    @staticmethod
    def update(actor, delivery_id, data):
        unknown = sorted(set(data) - set(_EDITABLE))
        if unknown:
            raise ValidationError(
                f"These fields cannot be edited: {', '.join(unknown)}",
                details={f: "not_editable" for f in unknown},
            )
        repo = DeliveryRepository()
        delivery = repo.get(delivery_id)
        patch = dict(data)
        if "provider_uid" in patch and patch["provider_uid"] != delivery.provider_uid:
            project = ProjectRepository().get(delivery.project_id)
            provider = _assignable_provider(project, patch["provider_uid"])
            patch["provider_name"] = provider.name
        repo.update(delivery, patch)
        commit_or_raise("update_delivery")
        logger.info("delivery_updated id=%s fields=%s by=%s",
                    delivery.id, ",".join(sorted(data)), actor.id,
                    extra={"event_type": "delivery_updated", "delivery_id": delivery.id})
        return delivery

    @staticmethod
    def delete(actor, delivery_id):
        """Soft delete plus hard delete of sub-records. Idempotent."""
        repo = DeliveryRepository()
        delivery = repo.get(delivery_id, include_deleted=True)
        if delivery.is_deleted:
            return delivery
        repo.purge_children(delivery)
        repo.soft_delete(delivery)
        project_service.refresh_completion_rate(delivery.project_id)
        commit_or_raise("delete_delivery")
        logger.info("delivery_deleted id=%s by=%s", delivery.id, actor.id,
                    extra={"event_type": "delivery_deleted", "delivery_id": delivery.id})
        return delivery

    # ── Workflow ──────────────────────────────────────────────────────────

    @staticmethod
    def transition(caller, scope, delivery_id, target):
        """Move a delivery along the state machine.

        Returns:
            (delivery, warnings) where warnings come from notification fan-out.

        Raises:
            NotFoundError: not visible to the caller.
            ValidationError: unknown status name.
            TransitionDenied: the table or a precondition refuses the move.
        """
        repo = DeliveryRepository()
        delivery = repo.get_scoped(delivery_id, scope.deliveries)
        previous = delivery.status
        try:
            check_transition(delivery, caller, target, require_attachment=_require_attachment())
        except (TransitionDenied, ValidationError) as exc:
            logger.warning("transition_denied delivery_id=%s role=%s from=%s to=%s reason=%s",
                           delivery.id, caller.role, previous, target, exc,
                           extra={"event_type": "transition_denied", "delivery_id": delivery.id})
            raise

        repo.update(delivery, {"status": target})
        project_service.refresh_completion_rate(delivery.project_id)
        commit_or_raise("transition_delivery")
        logger.info("delivery_transition delivery_id=%s from=%s to=%s by=%s role=%s",
                    delivery.id, previous, target, caller.id, caller.role,
                    extra={"event_type": "delivery_transition", "delivery_id": delivery.id})

        warnings = []
        notif_type = notification_type_for(caller.role, target)
        if notif_type:
            result = NotificationService.fan_out(FanOutEvent.for_delivery(notif_type, delivery))
            warnings.extend(result.warnings)
        return delivery, warnings

    @staticmethod
    def add_comment(author, caller, scope, delivery_id, text):
        """Append a comment. Contractor comments notify every active admin.

        Returns:
            (comment, warnings)
        """
        repo = DeliveryRepository()
        delivery = repo.get_scoped(delivery_id, scope.deliveries)
        comment = repo.add_comment(delivery, author=author, text=text)
        commit_or_raise("add_comment")
        logger.info("comment_added delivery_id=%s author=%s", delivery.id, author.id,
                    extra={"event_type": "comment_added", "delivery_id": delivery.id})

        warnings = []
        if caller.role == ROLE_PRESTADOR:
            result = NotificationService.fan_out(FanOutEvent.for_delivery(NOTIF_COMMENT, delivery))
            warnings.extend(result.warnings)
        return comment, warnings

    @staticmethod
    def add_attachment(uploader, scope, delivery_id, data):
        repo = DeliveryRepository()
        delivery = repo.get_scoped(delivery_id, scope.deliveries)
        attachment = repo.add_attachment(delivery, data, uploader=uploader)
        commit_or_raise("add_attachment")
        logger.info("attachment_added delivery_id=%s uploader=%s", delivery.id, uploader.id,
                    extra={"event_type": "attachment_added", "delivery_id": delivery.id})
        return attachment

    @staticmethod
    def add_checklist_item(delivery_id, label):
        repo = DeliveryRepository()
        delivery = repo.get_scoped(delivery_id, MATCH_ALL)
        item = repo.add_checklist_item(delivery, label)
        commit_or_raise("add_checklist_item")
        return item

    @staticmethod
    def set_checklist_item(caller, scope, delivery_id, item_id, completed):
        repo = DeliveryRepository()
        delivery = repo.get_scoped(delivery_id, scope.deliveries)
        if delivery.status == STATUS_APROVADO and not caller.is_admin:
            raise AuthorizationDenied("Approved deliveries can no longer be edited")
        item = repo.set_checklist_completed(delivery, item_id, completed)
        if item is None:
            raise NotFoundError(resource="ChecklistItem", resource_id=item_id)
        commit_or_raise("toggle_checklist_item")
        return item
