"""
Contractor Delivery Portal
Notification Service.

Fans one delivery event out to its recipients and serves the per-recipient
inbox (list, unread count, mark read).

Fan-out always runs AFTER the triggering mutation committed. Its failure is
logged and handed back as a ``PartialCascadeFailure`` warning; it never
raises into the caller and never undoes the primary write.

    COMMENT, SUBMITTED        → every active admin
    APPROVED, ADJUST_REQUESTED → the delivery's assigned contractor
"""

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from portal.core.exceptions import NotFoundError, PartialCascadeFailure, StoreUnavailable
from portal.models import db
from portal.models.notification import (
    NOTIF_ADJUST_REQUESTED,
    NOTIF_APPROVED,
    NOTIF_COMMENT,
    NOTIF_SUBMITTED,
    Notification,
)
from portal.repositories import NotificationRepository, UserRepository, commit_or_raise, discard_staged

logger = logging.getLogger(__name__)

_TITLES = {
    NOTIF_COMMENT: "Novo comentário: {title}",
    NOTIF_SUBMITTED: "Entrega enviada para revisão: {title}",
    NOTIF_APPROVED: "Entrega aprovada: {title}",
    NOTIF_ADJUST_REQUESTED: "Ajustes solicitados: {title}",
}

_ADMIN_BOUND = frozenset({NOTIF_COMMENT, NOTIF_SUBMITTED})


@dataclass(frozen=True)
class FanOutEvent:
    type: str
    delivery_id: str
    delivery_title: str
    project_id: str | None
    provider_uid: str

    @classmethod
    def for_delivery(cls, type_, delivery):
        return cls(
            type=type_,
            delivery_id=delivery.id,
            delivery_title=delivery.title,
            project_id=delivery.project_id,
            provider_uid=delivery.provider_uid,
        )


@dataclass
class FanOutResult:
    recipients: list = field(default_factory=list)
    created: int = 0
    warnings: list = field(default_factory=list)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Fan-out ───────────────────────────────────────────────────────────

    @staticmethod
    def recipients_for(event):
        if event.type in _ADMIN_BOUND:
            return [admin.id for admin in UserRepository().active_admins()]
        if event.type in (NOTIF_APPROVED, NOTIF_ADJUST_REQUESTED):
            return [event.provider_uid] if event.provider_uid else []
        raise ValueError(f"Unknown notification type: {event.type}")

    @staticmethod
    def fan_out(event, *, atomic=None):
        """Write one unread notification per recipient.

        Args:
            event: the FanOutEvent describing the committed mutation.
            atomic: all-or-nothing batch when True, best-effort per record
                when False. Defaults to NOTIFICATION_BATCH_ATOMIC.

        Returns:
            FanOutResult. A failure shows up in ``warnings``, never as an
            exception.
        """
        if atomic is None:
            atomic = current_app.config.get("NOTIFICATION_BATCH_ATOMIC", True)
        result = FanOutResult()
        tags = {"event_type": "notification_fanout", "delivery_id": event.delivery_id}
        failure_tags = dict(tags, event_type="notification_fanout_failed")
        try:
            result.recipients = NotificationService.recipients_for(event)
        except (SQLAlchemyError, StoreUnavailable) as exc:
            logger.warning("notification_fanout_failed type=%s delivery_id=%s stage=recipients error=%s",
                           event.type, event.delivery_id, exc, extra=failure_tags)
            result.warnings.append(PartialCascadeFailure(
                "notification_fanout", completed=0, failed=1, reason="could not resolve recipients",
            ).to_dict())
            return result

        if not result.recipients:
            logger.info("notification_fanout type=%s delivery_id=%s recipients=0",
                        event.type, event.delivery_id, extra=tags)
            return result

        title = _TITLES[event.type].format(title=event.delivery_title)
        repo = NotificationRepository()

        if atomic:
            try:
                for uid in result.recipients:
                    repo.create(recipient_uid=uid, type=event.type, title=title,
                                project_id=event.project_id, delivery_id=event.delivery_id)
                commit_or_raise("notification_fanout")
                result.created = len(result.recipients)
            except (StoreUnavailable, SQLAlchemyError) as exc:
                discard_staged()
                db.session.rollback()
                logger.warning("notification_fanout_failed type=%s delivery_id=%s atomic=true error=%s",
                               event.type, event.delivery_id, exc, extra=failure_tags)
                result.warnings.append(PartialCascadeFailure(
                    "notification_fanout", completed=0, failed=len(result.recipients),
                    reason="notification batch was not written",
                ).to_dict())
        else:
            failed = 0
            for uid in result.recipients:
                try:
                    repo.create(recipient_uid=uid, type=event.type, title=title,
                                project_id=event.project_id, delivery_id=event.delivery_id)
                    commit_or_raise("notification_fanout")
                    result.created += 1
                except (StoreUnavailable, SQLAlchemyError) as exc:
                    discard_staged()
                    db.session.rollback()
                    failed += 1
                    logger.warning("notification_fanout_failed type=%s delivery_id=%s recipient=%s error=%s",
                                   event.type, event.delivery_id, uid, exc, extra=failure_tags)
            if failed:
                result.warnings.append(PartialCascadeFailure(
                    "notification_fanout", completed=result.created, failed=failed,
                ).to_dict())

        logger.info("notification_fanout type=%s delivery_id=%s created=%d recipients=%d",
                    event.type, event.delivery_id, result.created, len(result.recipients), extra=tags)
        return result

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_uid, *, unread_only=False, limit=50, offset=0):
        """Notifications for a recipient, newest first. Returns (items, total)."""
        q = Notification.query.filter_by(recipient_uid=recipient_uid)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id)
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_uid):
        return NotificationRepository().unread_for(recipient_uid).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_uid):
        """Mark one of the recipient's own notifications as read (idempotent)."""
        repo = NotificationRepository()
        notif = repo.get_or_none(notification_id)
        if notif is None or notif.recipient_uid != recipient_uid:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if repo.mark_read(notif):
            commit_or_raise("mark_notification_read")
        return notif

    @staticmethod
    def mark_all_read(recipient_uid):
        repo = NotificationRepository()
        count = 0
        for notif in repo.unread_for(recipient_uid).all():
            if repo.mark_read(notif):
                count += 1
        if count:
            commit_or_raise("mark_all_notifications_read")
        return count
