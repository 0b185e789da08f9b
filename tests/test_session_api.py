"""
Session/Profile gate over HTTP: identity token handling, first sign-in,
entry views and self-service profile edits.
"""

import jwt

from portal.models.user import UserProfile


class TestIdentityToken:
    def test_missing_token_is_401(self, client):
        res = client.get("/api/v1/session")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_token_signed_with_another_key_is_401(self, client, token):
        bad = token("u1", secret="not-the-identity-secret-0123456789abcdef")
        res = client.get("/api/v1/session", headers={"Authorization": f"Bearer {bad}"})
        assert res.status_code == 401

    def test_token_without_subject_is_401(self, app, client):
        raw = jwt.encode({"email": "x@example.com"}, app.config["IDENTITY_TOKEN_SECRET"], algorithm="HS256")
        res = client.get("/api/v1/session", headers={"Authorization": f"Bearer {raw}"})
        assert res.status_code == 401

    def test_hmac_keys_meet_the_minimum_length(self, app):
        # HS256 keys shorter than the digest size are rejected by strict verifiers
        assert len(app.config["IDENTITY_TOKEN_SECRET"].encode()) >= 32
        assert len(app.config["SECRET_KEY"].encode()) >= 32

    def test_health_needs_no_token(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"


class TestFirstSignIn:
    def test_creates_pending_contractor_profile(self, client, auth):
        res = client.get("/api/v1/session", headers=auth("new-1", email="joana@example.com", name="Joana"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["view"] == "pending"
        assert body["capabilities"] == []
        profile = body["profile"]
        assert profile["role"] == "PRESTADOR"
        assert profile["status"] == "PENDING"
        assert profile["active"] is False
        assert profile["name"] == "Joana"

    def test_name_falls_back_to_email_local_part(self, client, auth):
        res = client.get("/api/v1/session", headers=auth("new-2", email="carlos.silva@example.com"))
        assert res.get_json()["profile"]["name"] == "carlos.silva"

    def test_sign_in_is_idempotent_and_merges_provider_values(self, client, auth):
        client.get("/api/v1/session", headers=auth("new-3", email="a@example.com", name="A"))
        res = client.get("/api/v1/session", headers=auth(
            "new-3", email="a@example.com", name="Alice Souza", picture="https://cdn.example.com/a.png",
        ))
        profile = res.get_json()["profile"]
        assert profile["name"] == "Alice Souza"
        assert profile["photo_url"] == "https://cdn.example.com/a.png"
        assert UserProfile.query.filter_by(id="new-3").count() == 1

    def test_pending_profile_cannot_use_working_views(self, client, auth):
        client.get("/api/v1/session", headers=auth("new-4", email="b@example.com"))
        res = client.get("/api/v1/projects", headers=auth("new-4"))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_registration_details_never_change_status(self, client, auth):
        client.get("/api/v1/session", headers=auth("new-5", email="c@example.com"))
        res = client.post("/api/v1/session/profile", headers=auth("new-5"), json={
            "name": "  Carla   Dias ", "pix_key": "carla@pix",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["profile"]["name"] == "Carla Dias"
        assert body["profile"]["pix_key"] == "carla@pix"
        assert body["profile"]["status"] == "PENDING"
        assert body["view"] == "pending"

    def test_registration_requires_a_name(self, client, auth):
        res = client.post("/api/v1/session/profile", headers=auth("new-6", email="d@example.com"), json={"name": " "})
        assert res.status_code == 400

    def test_registration_rejects_invalid_email(self, client, auth):
        res = client.post("/api/v1/session/profile", headers=auth("new-7", email="e@example.com"), json={
            "name": "Eva", "email": "not-an-email",
        })
        assert res.status_code == 400
        assert res.get_json()["details"] == {"email": "invalid"}


class TestEntryViews:
    def test_admin_and_contractor_views(self, client, auth, admin, contractor):
        admin_body = client.get("/api/v1/session", headers=auth(admin.id)).get_json()
        assert admin_body["view"] == "admin"
        assert "deliveries.review" in admin_body["capabilities"]

        contractor_body = client.get("/api/v1/session", headers=auth(contractor.id)).get_json()
        assert contractor_body["view"] == "contractor"

    def test_approved_but_inactive_is_still_pending(self, client, auth, make_user):
        make_user("off-1", active=False)
        assert client.get("/api/v1/session", headers=auth("off-1")).get_json()["view"] == "pending"


class TestMe:
    def test_edit_own_profile(self, client, auth, contractor):
        res = client.patch("/api/v1/me", headers=auth(contractor.id), json={
            "name": "Paulo P.", "pix_key": "123.456.789-00",
        })
        assert res.status_code == 200
        assert res.get_json()["name"] == "Paulo P."
        assert res.get_json()["pix_key"] == "123.456.789-00"

    def test_role_and_status_are_not_self_editable(self, client, auth, contractor):
        res = client.patch("/api/v1/me", headers=auth(contractor.id), json={"role": "ADMIN", "active": True})
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"active", "role"}

    def test_photo_must_be_a_link(self, client, auth, contractor):
        res = client.patch("/api/v1/me", headers=auth(contractor.id), json={"photo_url": "javascript:alert(1)"})
        assert res.status_code == 400
