"""Safety documents, laid out per owner (providers/<uid>/safety-docs).

Only admins and the owning contractor can see or change an owner's documents.
"""

import logging

from portal.core.exceptions import AuthorizationDenied, NotFoundError, ValidationError
from portal.models.user import ROLE_PRESTADOR
from portal.repositories import SafetyDocRepository, UserRepository, commit_or_raise

logger = logging.getLogger(__name__)


def _check_access(caller, owner_uid):
    if caller.is_admin or caller.id == owner_uid:
        return
    raise AuthorizationDenied("You can only manage your own safety documents")


def _owner(owner_uid):
    owner = UserRepository().get(owner_uid)
    if owner.role != ROLE_PRESTADOR:
        raise ValidationError("Safety documents belong to contractor accounts",
                              details={"owner_uid": "not_a_contractor"})
    return owner


def list_docs(caller, owner_uid):
    _check_access(caller, owner_uid)
    return SafetyDocRepository().for_owner(owner_uid)


def create_doc(caller, creator, owner_uid, data):
    _check_access(caller, owner_uid)
    _owner(owner_uid)
    doc = SafetyDocRepository().create(owner_uid, data, created_by=creator)
    commit_or_raise("create_safety_doc")
    logger.info("safety_doc_created id=%s owner=%s type=%s by=%s",
                doc.id, owner_uid, doc.doc_type, creator.id,
                extra={"event_type": "safety_doc_created", "user_id": owner_uid})
    return doc


def delete_doc(caller, owner_uid, doc_id):
    """Hard delete; corrections are delete + recreate."""
    _check_access(caller, owner_uid)
    repo = SafetyDocRepository()
    doc = repo.get_or_none(doc_id)
    if doc is None or doc.owner_uid != owner_uid:
        raise NotFoundError(resource="SafetyDoc", resource_id=doc_id)
    repo.hard_delete(doc)
    commit_or_raise("delete_safety_doc")
    logger.info("safety_doc_deleted id=%s owner=%s by=%s", doc_id, owner_uid, caller.id,
                extra={"event_type": "safety_doc_deleted", "user_id": owner_uid})
