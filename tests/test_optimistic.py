"""Optimistic update ledger: apply locally, then commit or revert."""

import pytest

from portal.core.exceptions import NotFoundError
from portal.services.optimistic import OptimisticLedger


@pytest.fixture()
def ledger():
    return OptimisticLedger({"d1": {"id": "d1", "status": "PENDENTE", "priority": "MEDIA"}})


def test_apply_is_visible_immediately(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    assert ledger.get("d1")["status"] == "REVISAO"
    assert ledger.pending_count == 1
    assert pending


def test_reconcile_ok_keeps_and_adopts_confirmed_record(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    confirmed = {"id": "d1", "status": "REVISAO", "priority": "MEDIA", "updated_at": "2026-03-10"}
    assert ledger.reconcile(pending, ok=True, confirmed=confirmed) == confirmed
    assert ledger.pending_count == 0


def test_rejected_write_restores_pre_attempt_value(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    assert ledger.reconcile(pending, ok=False)["status"] == "PENDENTE"


def test_revert_removes_fields_that_did_not_exist(ledger):
    pending = ledger.apply_optimistic("d1", {"reviewer": "a1"})
    assert "reviewer" not in ledger.reconcile(pending, ok=False)


def test_revert_leaves_newer_values_alone(ledger):
    first = ledger.apply_optimistic("d1", {"status": "REVISAO", "priority": "ALTA"})
    ledger.apply_optimistic("d1", {"priority": "BAIXA"})
    record = ledger.reconcile(first, ok=False)
    assert record["status"] == "PENDENTE"
    assert record["priority"] == "BAIXA"


def test_pushed_record_wins_over_stale_revert(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    ledger.receive("upsert", {"id": "d1", "status": "APROVADO", "priority": "MEDIA"})
    assert ledger.reconcile(pending, ok=False)["status"] == "APROVADO"


def test_reconcile_twice_is_an_error(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    ledger.reconcile(pending, ok=True)
    with pytest.raises(NotFoundError):
        ledger.reconcile(pending, ok=True)


def test_unknown_record(ledger):
    with pytest.raises(NotFoundError):
        ledger.apply_optimistic("nope", {"status": "REVISAO"})


def test_record_removed_while_pending(ledger):
    pending = ledger.apply_optimistic("d1", {"status": "REVISAO"})
    ledger.receive("remove", {"id": "d1"})
    assert ledger.reconcile(pending, ok=False) is None
