"""Entity repositories: one per collection, all built on ``base.Repository``."""

from portal.repositories.base import commit_or_raise, discard_staged, new_id
from portal.repositories.deliveries import DeliveryRepository
from portal.repositories.notifications import NotificationRepository
from portal.repositories.projects import ProjectRepository
from portal.repositories.safety_docs import SafetyDocRepository
from portal.repositories.users import UserRepository

REPOSITORIES = {
    "users": UserRepository,
    "projects": ProjectRepository,
    "deliveries": DeliveryRepository,
    "safety_docs": SafetyDocRepository,
    "notifications": NotificationRepository,
}


def load_scoped(collection, flt, limit=None):
    """Newest live records of ``collection`` inside ``flt``, serialized."""
    items, _total = REPOSITORIES[collection]().list_scoped(flt, limit=limit)
    return [item.to_dict() for item in items]


__all__ = [
    "commit_or_raise",
    "discard_staged",
    "load_scoped",
    "new_id",
    "DeliveryRepository",
    "NotificationRepository",
    "ProjectRepository",
    "REPOSITORIES",
    "SafetyDocRepository",
    "UserRepository",
]
