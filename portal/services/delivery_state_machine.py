"""
Delivery lifecycle: status values, role-gated transition table, preconditions.

    PENDENTE ──(PRESTADOR)──▶ REVISAO ──(ADMIN)──▶ APROVADO (terminal)
        AJUSTES ──(PRESTADOR)──▶ REVISAO ──(ADMIN)──▶ AJUSTES

ATRASADO is derived at read time (deadline passed while not APROVADO) and is
never a transition target.

Everything here is pure: the same ``evaluate_transition`` backs both the
server-side check (``check_transition`` raises TransitionDenied) and the
UI enablement list (``allowed_actions``), so the two cannot drift apart.

Usage:
    from portal.services.delivery_state_machine import check_transition

    check_transition(delivery, caller, "REVISAO", require_attachment=True)
"""

from __future__ import annotations

from datetime import date

from portal.core.exceptions import AuthorizationDenied, TransitionDenied, ValidationError
from portal.models.notification import NOTIF_ADJUST_REQUESTED, NOTIF_APPROVED, NOTIF_SUBMITTED
from portal.models.user import ROLE_ADMIN, ROLE_PRESTADOR

STATUS_PENDENTE = "PENDENTE"
STATUS_REVISAO = "REVISAO"
STATUS_AJUSTES = "AJUSTES"
STATUS_APROVADO = "APROVADO"
STATUS_ATRASADO = "ATRASADO"

# Values that may be stored on a delivery
DELIVERY_STATUSES = (STATUS_PENDENTE, STATUS_REVISAO, STATUS_AJUSTES, STATUS_APROVADO)
# Values a client may see (stored + derived)
DISPLAY_STATUSES = DELIVERY_STATUSES + (STATUS_ATRASADO,)
TERMINAL_STATUSES = frozenset({STATUS_APROVADO})

# role -> from_status -> allowed targets
DELIVERY_TRANSITIONS = {
    ROLE_PRESTADOR: {
        STATUS_PENDENTE: (STATUS_REVISAO,),
        STATUS_AJUSTES: (STATUS_REVISAO,),
    },
    ROLE_ADMIN: {
        STATUS_REVISAO: (STATUS_APROVADO, STATUS_AJUSTES),
    },
}

# (role, target) -> notification type emitted after a successful transition
TRANSITION_NOTIFICATIONS = {
    (ROLE_PRESTADOR, STATUS_REVISAO): NOTIF_SUBMITTED,
    (ROLE_ADMIN, STATUS_AJUSTES): NOTIF_ADJUST_REQUESTED,
    (ROLE_ADMIN, STATUS_APROVADO): NOTIF_APPROVED,
}

PRECONDITION_ATTACHMENT = "attachment_required"
ATTACHMENT_REQUIRED_MESSAGE = "Attach at least one file reference before requesting review"


def _role_table(role: str) -> dict:
    table = DELIVERY_TRANSITIONS.get(role)
    if table is None:
        raise AuthorizationDenied(f"Unrecognized role {role!r}", details={"role": role})
    return table


def allowed_targets(role: str, status: str) -> tuple:
    """Targets the transition table offers ``role`` from ``status``, ignoring preconditions."""
    return _role_table(role).get(status, ())


def is_overdue(status: str, deadline: date | None, today: date) -> bool:
    return deadline is not None and deadline < today and status not in TERMINAL_STATUSES


def effective_status(status: str, deadline: date | None, today: date) -> str:
    """Status as displayed: ATRASADO overrides any non-approved status once the deadline passed."""
    return STATUS_ATRASADO if is_overdue(status, deadline, today) else status


def evaluate_transition(
    *,
    role: str,
    caller_id: str,
    status: str,
    provider_uid: str,
    attachment_count: int,
    target: str,
    require_attachment: bool,
) -> TransitionDenied | None:
    """Return the reason a transition is refused, or None when it is legal."""
    _role_table(role)
    details = {"current": status, "requested": target, "role": role}

    if target == STATUS_ATRASADO:
        return TransitionDenied(
            "ATRASADO is derived from the deadline and cannot be set", **details,
        )
    if status in TERMINAL_STATUSES:
        return TransitionDenied(
            f"Delivery is already {status}; approved deliveries are final", **details,
        )
    if role == ROLE_PRESTADOR and provider_uid != caller_id:
        return TransitionDenied(
            "Only the assigned contractor can change this delivery's status", **details,
        )
    if target not in allowed_targets(role, status):
        return TransitionDenied(f"{role} cannot move a delivery from {status} to {target}", **details)
    if (
        role == ROLE_PRESTADOR
        and target == STATUS_REVISAO
        and require_attachment
        and attachment_count < 1
    ):
        return TransitionDenied(
            ATTACHMENT_REQUIRED_MESSAGE, precondition=PRECONDITION_ATTACHMENT, **details,
        )
    return None


def check_transition(delivery, caller, target: str, *, require_attachment: bool) -> None:
    """Raise TransitionDenied unless ``caller`` may move ``delivery`` to ``target``.

    Raises:
        ValidationError: ``target`` is not a status name at all.
        TransitionDenied: the table or a precondition refuses the move.
    """
    if target not in DISPLAY_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(DELIVERY_STATUSES)}", details={"status": "invalid_choice"},
        )
    denial = evaluate_transition(
        role=caller.role,
        caller_id=caller.id,
        status=delivery.status,
        provider_uid=delivery.provider_uid,
        attachment_count=delivery.attachment_count,
        target=target,
        require_attachment=require_attachment,
    )
    if denial is not None:
        raise denial


def allowed_actions(delivery, caller, *, require_attachment: bool) -> list[dict]:
    """Targets offered to ``caller`` on ``delivery``, each flagged enabled/disabled with its reason."""
    actions = []
    for target in allowed_targets(caller.role, delivery.status):
        denial = evaluate_transition(
            role=caller.role,
            caller_id=caller.id,
            status=delivery.status,
            provider_uid=delivery.provider_uid,
            attachment_count=delivery.attachment_count,
            target=target,
            require_attachment=require_attachment,
        )
        actions.append({
            "status": target,
            "enabled": denial is None,
            "reason": denial.message if denial else None,
        })
    return actions


def notification_type_for(role: str, target: str) -> str | None:
    return TRANSITION_NOTIFICATIONS.get((role, target))
