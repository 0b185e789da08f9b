"""Notification repository."""

from portal.core.exceptions import ValidationError
from portal.models.notification import NOTIFICATION_TYPES, Notification
from portal.repositories.base import Repository, new_id
from portal.utils.helpers import validate_choice


class NotificationRepository(Repository):
    model = Notification
    collection = "notifications"
    label = "Notification"

    def create(self, *, recipient_uid, type, title, project_id=None, delivery_id=None):
        if not recipient_uid:
            raise ValidationError("recipient_uid is required", details={"recipient_uid": "required"})
        notif = Notification(
            id=new_id(),
            recipient_uid=recipient_uid,
            type=validate_choice(type, NOTIFICATION_TYPES, "type"),
            title=title[:400],
            project_id=project_id,
            delivery_id=delivery_id,
            is_read=False,
        )
        return self.stage_upsert(notif)

    def unread_for(self, recipient_uid):
        return Notification.query.filter_by(recipient_uid=recipient_uid, is_read=False)

    def mark_read(self, notif):
        changed = notif.mark_read()
        if changed:
            self.stage_upsert(notif)
        return changed
