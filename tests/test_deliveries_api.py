"""
Deliveries over HTTP: admin CRUD, the status workflow with its
notifications, scoped visibility, sub-records and the derived ATRASADO view.
"""

from datetime import date, timedelta

import pytest

from portal.core.exceptions import StoreUnavailable
from portal.models import db
from portal.models.delivery import Delivery
from portal.models.notification import Notification
from portal.services import notification as notification_module
from portal.services.delivery_state_machine import ATTACHMENT_REQUIRED_MESSAGE


def in_days(n):
    return (date.today() + timedelta(days=n)).isoformat()


def _attach(client, auth, uid, delivery_id, name="unifilar_rev0.pdf"):
    res = client.post(f"/api/v1/deliveries/{delivery_id}/attachments", headers=auth(uid), json={
        "name": name, "url": "https://files.example.com/unifilar_rev0.pdf",
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _move(client, auth, uid, delivery_id, status):
    return client.post(f"/api/v1/deliveries/{delivery_id}/transition", headers=auth(uid), json={"status": status})


def _notifications(recipient_uid, type_=None):
    q = Notification.query.filter_by(recipient_uid=recipient_uid)
    if type_:
        q = q.filter_by(type=type_)
    return q.all()


@pytest.fixture()
def submitted(client, auth, contractor, delivery):
    _attach(client, auth, contractor.id, delivery["id"])
    res = _move(client, auth, contractor.id, delivery["id"], "REVISAO")
    assert res.status_code == 200, res.get_json()
    return res.get_json()["delivery"]


# ═════════════════════════════════════════════════════════════════════════════
# Admin CRUD
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_create_starts_pendente_with_denormalized_names(self, delivery, project):
        assert delivery["status"] == "PENDENTE"
        assert delivery["client_name"] == "ACME Energia"
        assert delivery["project_name"] == "Subestação Norte"
        assert delivery["provider_name"] == "Paulo Prestador"
        assert delivery["priority"] == "MEDIA"
        assert delivery["checklist"] == []

    def test_create_with_checklist(self, make_delivery):
        created = make_delivery(checklist=["Memorial descritivo", "ART assinada"])
        assert [i["label"] for i in created["checklist"]] == ["Memorial descritivo", "ART assinada"]
        assert all(i["completed"] is False for i in created["checklist"])

    def test_provider_outside_project_is_rejected_without_write(self, client, auth, admin, project, make_user):
        make_user("prest-3")
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json={
            "project_id": project["id"], "provider_uid": "prest-3",
            "title": "Memorial", "deadline": in_days(5),
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"provider_uid": "not_a_member"}
        assert Delivery.query.count() == 0

    def test_inactive_member_cannot_be_assigned(self, client, auth, admin, project, other_contractor):
        other_contractor.active = False
        db.session.commit()
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json={
            "project_id": project["id"], "provider_uid": other_contractor.id,
            "title": "Memorial", "deadline": in_days(5),
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"provider_uid": "inactive"}

    def test_unknown_project_is_a_validation_error(self, client, auth, admin, contractor):
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json={
            "project_id": "nope", "provider_uid": contractor.id, "title": "X", "deadline": in_days(5),
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"project_id": "not_found"}

    def test_deadline_must_be_iso_date(self, client, auth, admin, project, contractor):
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json={
            "project_id": project["id"], "provider_uid": contractor.id, "title": "X", "deadline": "31/12/2030",
        })
        assert res.status_code == 400

    def test_checklist_must_be_a_list(self, client, auth, admin, project, contractor):
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json={
            "project_id": project["id"], "provider_uid": contractor.id, "title": "X",
            "deadline": in_days(3), "checklist": "abc",
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"checklist": "invalid"}
        assert Delivery.query.count() == 0

    def test_contractor_cannot_create(self, client, auth, contractor, project):
        res = client.post("/api/v1/deliveries", headers=auth(contractor.id), json={
            "project_id": project["id"], "provider_uid": contractor.id, "title": "X", "deadline": in_days(5),
        })
        assert res.status_code == 403


class TestUpdateDelete:
    def test_admin_edits_fields(self, client, auth, admin, delivery):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id), json={
            "priority": "ALTA", "title": "Diagrama unifilar rev1",
        })
        assert res.status_code == 200
        assert res.get_json()["priority"] == "ALTA"
        assert res.get_json()["title"] == "Diagrama unifilar rev1"

    def test_status_is_not_editable_directly(self, client, auth, admin, delivery):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id), json={"status": "APROVADO"})
        assert res.status_code == 400
        assert db.session.get(Delivery, delivery["id"]).status == "PENDENTE"

    def test_reassign_provider_updates_name(self, client, auth, admin, delivery, other_contractor):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id), json={
            "provider_uid": other_contractor.id,
        })
        assert res.status_code == 200
        assert res.get_json()["provider_name"] == "Rita Prestadora"

    def test_delete_hides_delivery_and_purges_sub_records(self, client, auth, admin, contractor, delivery):
        _attach(client, auth, contractor.id, delivery["id"])
        res = client.delete(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id))
        assert res.status_code == 200
        assert client.get(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id)).status_code == 404
        row = db.session.get(Delivery, delivery["id"])
        assert row.deleted_at is not None
        assert row.attachments == []

    def test_second_delete_keeps_the_first_timestamp(self, client, auth, admin, delivery):
        client.delete(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id))
        deleted_at = db.session.get(Delivery, delivery["id"]).deleted_at
        assert deleted_at is not None

        again = client.delete(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id))
        assert again.status_code == 200
        assert again.get_json() == {"deleted": True, "id": delivery["id"]}
        db.session.expire_all()
        assert db.session.get(Delivery, delivery["id"]).deleted_at == deleted_at


# ═════════════════════════════════════════════════════════════════════════════
# Workflow
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmit:
    def test_submit_without_attachment_names_the_precondition(self, client, auth, contractor, delivery):
        res = _move(client, auth, contractor.id, delivery["id"], "REVISAO")
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_TRANSITION_DENIED"
        assert body["error"] == ATTACHMENT_REQUIRED_MESSAGE
        assert body["details"]["precondition"] == "attachment_required"
        assert db.session.get(Delivery, delivery["id"]).status == "PENDENTE"

    def test_submit_notifies_every_active_admin(self, client, auth, admin, contractor, delivery, make_user):
        make_user("admin-2", role="ADMIN")
        make_user("admin-3", role="ADMIN", status="PENDING", active=False)
        _attach(client, auth, contractor.id, delivery["id"])

        res = _move(client, auth, contractor.id, delivery["id"], "REVISAO")
        assert res.status_code == 200
        assert res.get_json()["delivery"]["status"] == "REVISAO"
        assert res.get_json()["warnings"] == []

        for uid in ("admin-1", "admin-2"):
            notes = _notifications(uid, "SUBMITTED")
            assert len(notes) == 1
            assert notes[0].delivery_id == delivery["id"]
            assert notes[0].is_read is False
        assert _notifications("admin-3") == []

    def test_other_contractor_gets_not_found(self, client, auth, other_contractor, delivery):
        res = _move(client, auth, other_contractor.id, delivery["id"], "REVISAO")
        assert res.status_code == 404

    def test_admin_cannot_submit_for_the_contractor(self, client, auth, admin, delivery):
        assert _move(client, auth, admin.id, delivery["id"], "REVISAO").status_code == 409


class TestReview:
    def test_approve_notifies_provider_and_is_final(self, client, auth, admin, contractor, submitted):
        res = _move(client, auth, admin.id, submitted["id"], "APROVADO")
        assert res.status_code == 200
        assert res.get_json()["delivery"]["status"] == "APROVADO"
        notes = _notifications(contractor.id, "APPROVED")
        assert len(notes) == 1
        assert notes[0].title == "Entrega aprovada: Diagrama unifilar"

        again = _move(client, auth, contractor.id, submitted["id"], "REVISAO")
        assert again.status_code == 409
        assert "final" in again.get_json()["error"]

    def test_adjustments_round_trip(self, client, auth, admin, contractor, submitted):
        res = _move(client, auth, admin.id, submitted["id"], "AJUSTES")
        assert res.status_code == 200
        assert len(_notifications(contractor.id, "ADJUST_REQUESTED")) == 1

        res = _move(client, auth, contractor.id, submitted["id"], "REVISAO")
        assert res.status_code == 200
        assert res.get_json()["delivery"]["status"] == "REVISAO"

    def test_contractor_cannot_approve(self, client, auth, contractor, submitted):
        res = _move(client, auth, contractor.id, submitted["id"], "APROVADO")
        assert res.status_code == 409
        assert res.get_json()["details"]["role"] == "PRESTADOR"

    def test_atrasado_is_never_a_target(self, client, auth, admin, submitted):
        res = _move(client, auth, admin.id, submitted["id"], "ATRASADO")
        assert res.status_code == 409
        assert "derived" in res.get_json()["error"]

    def test_unknown_status_is_a_validation_error(self, client, auth, admin, submitted):
        assert _move(client, auth, admin.id, submitted["id"], "CONCLUIDO").status_code == 400

    def test_approval_updates_project_completion_rate(self, client, auth, admin, contractor, project, make_delivery):
        first = make_delivery(title="A")
        make_delivery(title="B")
        _attach(client, auth, contractor.id, first["id"])
        _move(client, auth, contractor.id, first["id"], "REVISAO")
        _move(client, auth, admin.id, first["id"], "APROVADO")

        detail = client.get(f"/api/v1/projects/{project['id']}", headers=auth(admin.id)).get_json()
        assert detail["completion_rate"] == 50
        assert detail["delivery_counts"] == {"APROVADO": 1, "PENDENTE": 1, "total": 2}

    def test_failed_fan_out_is_a_warning_not_an_error(self, client, auth, admin, contractor, submitted, monkeypatch):
        def _unavailable(action="commit"):
            raise StoreUnavailable("Could not save changes")

        monkeypatch.setattr(notification_module, "commit_or_raise", _unavailable)
        res = _move(client, auth, admin.id, submitted["id"], "AJUSTES")
        assert res.status_code == 200
        warnings = res.get_json()["warnings"]
        assert len(warnings) == 1
        assert warnings[0]["operation"] == "notification_fanout"
        assert warnings[0]["failed"] == 1
        assert db.session.get(Delivery, submitted["id"]).status == "AJUSTES"
        assert _notifications(contractor.id) == []


class TestAllowedActions:
    def test_disabled_action_carries_the_reason(self, client, auth, contractor, delivery):
        body = client.get(f"/api/v1/deliveries/{delivery['id']}", headers=auth(contractor.id)).get_json()
        assert body["allowed_actions"] == [
            {"status": "REVISAO", "enabled": False, "reason": ATTACHMENT_REQUIRED_MESSAGE},
        ]

    def test_admin_sees_review_actions(self, client, auth, admin, submitted):
        body = client.get(f"/api/v1/deliveries/{submitted['id']}", headers=auth(admin.id)).get_json()
        assert [a["status"] for a in body["allowed_actions"]] == ["APROVADO", "AJUSTES"]
        assert all(a["enabled"] for a in body["allowed_actions"])


# ═════════════════════════════════════════════════════════════════════════════
# Visibility and the derived ATRASADO status
# ═════════════════════════════════════════════════════════════════════════════


class TestListing:
    def test_contractor_sees_only_own_deliveries(self, client, auth, contractor, other_contractor, make_delivery):
        mine = make_delivery(title="Mine")
        make_delivery(title="Theirs", provider_uid=other_contractor.id)
        body = client.get("/api/v1/deliveries", headers=auth(contractor.id)).get_json()
        assert [d["id"] for d in body["items"]] == [mine["id"]]
        assert body["total"] == 1

    def test_out_of_scope_detail_is_not_found(self, client, auth, other_contractor, delivery):
        res = client.get(f"/api/v1/deliveries/{delivery['id']}", headers=auth(other_contractor.id))
        assert res.status_code == 404

    def test_overdue_filter_and_display(self, client, auth, admin, make_delivery):
        late = make_delivery(title="Late", deadline=in_days(-3))
        on_time = make_delivery(title="On time", deadline=in_days(3))

        overdue = client.get("/api/v1/deliveries?status=ATRASADO", headers=auth(admin.id)).get_json()
        assert [d["id"] for d in overdue["items"]] == [late["id"]]
        assert overdue["items"][0]["display_status"] == "ATRASADO"
        assert overdue["items"][0]["status"] == "PENDENTE"
        assert overdue["items"][0]["is_overdue"] is True

        pending = client.get("/api/v1/deliveries?status=PENDENTE", headers=auth(admin.id)).get_json()
        assert [d["id"] for d in pending["items"]] == [on_time["id"]]

    def test_approved_delivery_is_never_overdue(self, client, auth, admin, contractor, make_delivery):
        late = make_delivery(title="Late", deadline=in_days(-3))
        _attach(client, auth, contractor.id, late["id"])
        _move(client, auth, contractor.id, late["id"], "REVISAO")
        _move(client, auth, admin.id, late["id"], "APROVADO")

        body = client.get(f"/api/v1/deliveries/{late['id']}", headers=auth(admin.id)).get_json()
        assert body["display_status"] == "APROVADO"
        overdue = client.get("/api/v1/deliveries?status=ATRASADO", headers=auth(admin.id)).get_json()
        assert overdue["total"] == 0

    def test_unknown_status_filter(self, client, auth, admin):
        assert client.get("/api/v1/deliveries?status=LATE", headers=auth(admin.id)).status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Sub-records
# ═════════════════════════════════════════════════════════════════════════════


class TestComments:
    def test_contractor_comment_notifies_admins(self, client, auth, admin, contractor, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/comments", headers=auth(contractor.id),
                          json={"text": "Enviei a revisão 0."})
        assert res.status_code == 201
        comment = res.get_json()["comment"]
        assert comment["author_name"] == "Paulo Prestador"
        assert comment["date"]
        assert len(_notifications(admin.id, "COMMENT")) == 1

    def test_admin_comment_notifies_nobody(self, client, auth, admin, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/comments", headers=auth(admin.id),
                          json={"text": "Ok, aguardando."})
        assert res.status_code == 201
        assert Notification.query.count() == 0

    def test_blank_comment_is_rejected(self, client, auth, contractor, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/comments", headers=auth(contractor.id),
                          json={"text": "   "})
        assert res.status_code == 400

    def test_comments_appear_in_detail_in_order(self, client, auth, admin, contractor, delivery):
        for text in ("primeiro", "segundo"):
            client.post(f"/api/v1/deliveries/{delivery['id']}/comments", headers=auth(contractor.id),
                        json={"text": text})
        body = client.get(f"/api/v1/deliveries/{delivery['id']}", headers=auth(admin.id)).get_json()
        assert [c["text"] for c in body["comments"]] == ["primeiro", "segundo"]
        assert body["comment_count"] == 2


class TestAttachments:
    def test_attachment_counts_toward_review(self, client, auth, contractor, delivery):
        _attach(client, auth, contractor.id, delivery["id"])
        body = client.get(f"/api/v1/deliveries/{delivery['id']}", headers=auth(contractor.id)).get_json()
        assert body["attachment_count"] == 1
        assert body["allowed_actions"][0]["enabled"] is True

    def test_attachment_link_must_be_http(self, client, auth, contractor, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/attachments", headers=auth(contractor.id),
                          json={"name": "x.pdf", "url": "file:///etc/passwd"})
        assert res.status_code == 400


class TestChecklist:
    @pytest.fixture()
    def item(self, client, auth, admin, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/checklist", headers=auth(admin.id),
                          json={"label": "ART assinada"})
        assert res.status_code == 201
        return res.get_json()

    def test_contractor_toggles_item(self, client, auth, contractor, delivery, item):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}/checklist/{item['id']}",
                           headers=auth(contractor.id), json={"completed": True})
        assert res.status_code == 200
        assert res.get_json()["completed"] is True

    def test_completed_must_be_boolean(self, client, auth, contractor, delivery, item):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}/checklist/{item['id']}",
                           headers=auth(contractor.id), json={"completed": "yes"})
        assert res.status_code == 400

    def test_unknown_item(self, client, auth, contractor, delivery, item):
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}/checklist/nope",
                           headers=auth(contractor.id), json={"completed": True})
        assert res.status_code == 404

    def test_contractor_cannot_add_items(self, client, auth, contractor, delivery):
        res = client.post(f"/api/v1/deliveries/{delivery['id']}/checklist", headers=auth(contractor.id),
                          json={"label": "X"})
        assert res.status_code == 403

    def test_approved_checklist_is_frozen_for_contractor(self, client, auth, admin, contractor, delivery, item):
        _attach(client, auth, contractor.id, delivery["id"])
        _move(client, auth, contractor.id, delivery["id"], "REVISAO")
        _move(client, auth, admin.id, delivery["id"], "APROVADO")
        res = client.patch(f"/api/v1/deliveries/{delivery['id']}/checklist/{item['id']}",
                           headers=auth(contractor.id), json={"completed": True})
        assert res.status_code == 403
