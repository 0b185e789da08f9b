"""Access scope resolver: which records of each collection a caller may see.

``scope_for`` is pure and total over the known roles. Each filter is a
``FieldFilter`` that repositories translate into a SQL criterion and that the
subscription manager evaluates in memory against serialized records, so the
two paths can never disagree about visibility.

Usage:
    from portal.services.access_scope import Caller, scope_for

    scope = scope_for(Caller(id="uid-1", role="PRESTADOR"))
    scope.projects.matches({"member_uids": ["uid-1"]})   # True
"""

from __future__ import annotations

from dataclasses import dataclass

from portal.core.exceptions import AuthorizationDenied
from portal.models.user import ROLE_ADMIN, ROLE_PRESTADOR, STATUS_ACTIVE, STATUS_DELETED

OP_ANY = "any"
OP_EQ = "eq"
OP_NE = "ne"
OP_CONTAINS = "contains"


@dataclass(frozen=True)
class Caller:
    """Authenticated, usable profile reduced to what scoping needs."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class FieldFilter:
    """Single-field visibility predicate over a serialized record."""

    field: str
    op: str
    value: object = None

    def matches(self, record: dict) -> bool:
        if self.op == OP_ANY:
            return True
        actual = record.get(self.field)
        if self.op == OP_EQ:
            return actual == self.value
        if self.op == OP_NE:
            return actual != self.value
        if self.op == OP_CONTAINS:
            return self.value in (actual or ())
        raise ValueError(f"Unknown filter op: {self.op}")


MATCH_ALL = FieldFilter(field="*", op=OP_ANY)


@dataclass(frozen=True)
class AccessScope:
    projects: FieldFilter
    deliveries: FieldFilter
    users: FieldFilter
    safety_docs: FieldFilter
    notifications: FieldFilter

    def for_collection(self, collection: str) -> FieldFilter:
        if collection not in self.__dataclass_fields__:
            raise ValueError(f"No scope rule for collection {collection!r}")
        return getattr(self, collection)


def scope_for(caller: Caller) -> AccessScope:
    """Compute the visibility filters for a caller.

    Raises:
        AuthorizationDenied: the role is not one the portal knows. An
            unknown role never falls back to an unfiltered scope.
    """
    if caller.role == ROLE_ADMIN:
        return AccessScope(
            projects=MATCH_ALL,
            deliveries=MATCH_ALL,
            users=FieldFilter("status", OP_NE, STATUS_DELETED),
            safety_docs=MATCH_ALL,
            notifications=FieldFilter("recipient_uid", OP_EQ, caller.id),
        )
    if caller.role == ROLE_PRESTADOR:
        return AccessScope(
            projects=FieldFilter("member_uids", OP_CONTAINS, caller.id),
            deliveries=FieldFilter("provider_uid", OP_EQ, caller.id),
            users=FieldFilter("status", OP_EQ, STATUS_ACTIVE),
            safety_docs=FieldFilter("owner_uid", OP_EQ, caller.id),
            notifications=FieldFilter("recipient_uid", OP_EQ, caller.id),
        )
    raise AuthorizationDenied(f"Unrecognized role {caller.role!r}", details={"role": caller.role})
