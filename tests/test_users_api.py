"""Admin review of user profiles: approve, reject, soft and hard delete."""

from portal.models import db
from portal.models.notification import Notification
from portal.models.project import ProjectMember
from portal.models.user import UserProfile


def _pending(make_user, uid="pend-1"):
    return make_user(uid, status="PENDING", active=False)


class TestApproval:
    def test_pending_queue(self, client, auth, admin, contractor, make_user):
        _pending(make_user)
        res = client.get("/api/v1/users/pending", headers=auth(admin.id))
        assert res.status_code == 200
        body = res.get_json()
        assert [u["id"] for u in body["items"]] == ["pend-1"]
        assert body["total"] == 1

    def test_approve_sets_role_and_activates(self, client, auth, admin, make_user):
        _pending(make_user)
        res = client.post("/api/v1/users/pend-1/approve", headers=auth(admin.id), json={"role": "PRESTADOR"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ACTIVE" and body["active"] is True
        assert body["role"] == "PRESTADOR"
        assert body["approved_at"] is not None

    def test_approve_needs_a_valid_role(self, client, auth, admin, make_user):
        _pending(make_user)
        res = client.post("/api/v1/users/pend-1/approve", headers=auth(admin.id), json={"role": "ROOT"})
        assert res.status_code == 400
        assert db_status("pend-1") == "PENDING"

    def test_reject_pending_user_without_notification(self, client, auth, admin, make_user):
        _pending(make_user, "U2")
        res = client.post("/api/v1/users/U2/reject", headers=auth(admin.id))
        assert res.status_code == 200
        assert res.get_json()["status"] == "REJECTED"
        assert res.get_json()["active"] is False
        assert Notification.query.count() == 0

    def test_admin_cannot_reject_self(self, client, auth, admin):
        assert client.post(f"/api/v1/users/{admin.id}/reject", headers=auth(admin.id)).status_code == 403

    def test_contractor_cannot_review(self, client, auth, contractor, make_user):
        _pending(make_user)
        res = client.post("/api/v1/users/pend-1/approve", headers=auth(contractor.id), json={"role": "ADMIN"})
        assert res.status_code == 403
        assert db_status("pend-1") == "PENDING"

    def test_unknown_user_is_404(self, client, auth, admin):
        res = client.post("/api/v1/users/ghost/approve", headers=auth(admin.id), json={"role": "PRESTADOR"})
        assert res.status_code == 404


class TestListing:
    def test_contractor_sees_only_active_users(self, client, auth, admin, contractor, make_user):
        _pending(make_user)
        make_user("rej-1", status="REJECTED", active=False)
        res = client.get("/api/v1/users", headers=auth(contractor.id))
        ids = {u["id"] for u in res.get_json()["items"]}
        assert ids == {admin.id, contractor.id}

    def test_contractor_listing_hides_contact_and_payment_details(self, client, auth, admin, contractor,
                                                                   other_contractor):
        admin.pix_key = "admin-pix"
        other_contractor.pix_key = "999.888.777-66"
        db.session.commit()

        items = client.get("/api/v1/users", headers=auth(contractor.id)).get_json()["items"]
        assert {u["id"] for u in items} == {admin.id, contractor.id, other_contractor.id}
        for user in items:
            assert set(user) == {"id", "name", "role", "photo_url"}

        admin_view = client.get("/api/v1/users", headers=auth(admin.id)).get_json()["items"]
        pix = {u["id"]: u["pix_key"] for u in admin_view}
        assert pix[other_contractor.id] == "999.888.777-66"
        assert all("email" in u for u in admin_view)

    def test_admin_filters(self, client, auth, admin, contractor, make_user):
        _pending(make_user)
        res = client.get("/api/v1/users?role=ADMIN", headers=auth(admin.id))
        assert [u["id"] for u in res.get_json()["items"]] == [admin.id]
        assert client.get("/api/v1/users?status=NOPE", headers=auth(admin.id)).status_code == 400


class TestDelete:
    def test_soft_delete_is_idempotent(self, client, auth, admin, contractor):
        first = client.delete(f"/api/v1/users/{contractor.id}", headers=auth(admin.id))
        assert first.status_code == 200
        deleted_at = first.get_json()["user"]["deleted_at"]
        assert first.get_json()["user"]["status"] == "DELETED"

        second = client.delete(f"/api/v1/users/{contractor.id}", headers=auth(admin.id))
        assert second.status_code == 200
        assert second.get_json()["user"]["deleted_at"] == deleted_at

    def test_soft_deleted_user_disappears_from_listings(self, client, auth, admin, contractor):
        client.delete(f"/api/v1/users/{contractor.id}", headers=auth(admin.id))
        ids = [u["id"] for u in client.get("/api/v1/users", headers=auth(admin.id)).get_json()["items"]]
        assert contractor.id not in ids

    def test_soft_deleted_user_loses_access(self, client, auth, admin, contractor):
        client.delete(f"/api/v1/users/{contractor.id}", headers=auth(admin.id))
        assert client.get("/api/v1/deliveries", headers=auth(contractor.id)).status_code == 403

    def test_hard_delete_removes_profile_and_memberships(self, client, auth, admin, contractor, project):
        res = client.delete(f"/api/v1/users/{contractor.id}?hard=true", headers=auth(admin.id))
        assert res.status_code == 200
        assert res.get_json()["hard"] is True
        assert UserProfile.query.filter_by(id=contractor.id).count() == 0
        assert ProjectMember.query.filter_by(user_uid=contractor.id).count() == 0

    def test_admin_cannot_delete_self(self, client, auth, admin):
        assert client.delete(f"/api/v1/users/{admin.id}", headers=auth(admin.id)).status_code == 403


def db_status(uid):
    return UserProfile.query.filter_by(id=uid).one().status
