"""
tests/test_api_routes.py -- Integration tests for the auth and organization routes.

These run the full stack: FastAPI routing -> bearer extraction -> credential
validation against the live store -> access gate -> handler -> error envelope.

Coverage:
  - login: success, wrong password and unknown email (same 401), no token on failure
  - signup: 201 with token, refused until an org admin binds it to an office
  - /me: re-resolved principal, 401 without or with a malformed header
  - organizations: superadmin registry, org-admin office scoping, 403s
  - feature changes reach an old token on its next request
  - deleted user's still-signed token is refused
"""

from __future__ import annotations

import uuid

import pytest


def _suffix() -> str:
    return uuid.uuid4().hex[:8]


@pytest.fixture
def organization(api_client):
    """Register an organization through the API and return (org_json, admin_email, admin_password)."""
    s = _suffix()
    body = {
        "organization_name": f"Acme {s}",
        "email": f"acme-{s}@example.com",
        "user_name": f"acme_{s}",
        "password": "acme-password-1",
        "features": ["guards", "payroll", "guards"],
        "city": "Karachi",
    }
    resp = api_client.client.post(
        "/api/v1/organizations/register", json=body, headers=api_client.auth(api_client.super_token)
    )
    assert resp.status_code == 201, resp.text
    return resp.json(), body["email"], body["password"]


def _login(api_client, email: str, password: str):
    return api_client.client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestHealth:
    def test_health_no_auth_required(self, api_client):
        resp = api_client.client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"] == "ok"

    def test_unknown_route_uses_error_envelope(self, api_client):
        resp = api_client.client.get("/api/v1/no-such-route")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "http_404"
        assert resp.json()["error"]["message"] == "Not Found"


class TestLogin:
    def test_login_success(self, api_client, organization):
        org, email, password = organization
        resp = _login(api_client, email, password)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token"]
        assert data["user"]["role"] == "organizationAdmin"
        assert data["user"]["organizationId"] == org["organization"]["id"]
        assert data["user"]["features"] == ["guards", "payroll"]
        assert data["user"]["isSuperAdmin"] is False

    def test_wrong_password_and_unknown_email_look_the_same(self, api_client, organization):
        _org, email, _password = organization
        wrong = _login(api_client, email, "not-the-password")
        unknown = _login(api_client, f"ghost-{_suffix()}@example.com", "not-the-password")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert "token" not in wrong.json()

    def test_invalid_body_is_422(self, api_client):
        resp = api_client.client.post("/api/v1/auth/login", json={"email": "not-an-email", "password": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestSignupAndMe:
    def test_signup_then_me_is_refused(self, api_client):
        s = _suffix()
        resp = api_client.client.post(
            "/api/v1/auth/signup",
            json={"email": f"solo-{s}@example.com", "user_name": f"solo_{s}", "password": "solo-password"},
        )
        assert resp.status_code == 201
        token = resp.json()["token"]
        assert resp.json()["user"]["features"] == []

        me = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token))
        assert me.status_code == 401
        assert me.json()["error"]["message"] == "User has no organization access"

    def test_signup_account_admitted_after_office_binding(self, api_client, organization):
        org, admin_email, admin_password = organization
        s = _suffix()
        signup = api_client.client.post(
            "/api/v1/auth/signup",
            json={"email": f"hire-{s}@example.com", "user_name": f"hire_{s}", "password": "hire-password"},
        )
        assert signup.status_code == 201
        token = signup.json()["token"]
        assert api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token)).status_code == 401

        admin_headers = api_client.auth(_login(api_client, admin_email, admin_password).json()["token"])
        office = api_client.client.post(
            "/api/v1/organizations/offices", json={"name": "Depot"}, headers=admin_headers
        ).json()
        bound = api_client.client.post(
            f"/api/v1/organizations/offices/{office['id']}/members",
            json={"email": f"hire-{s}@example.com"},
            headers=admin_headers,
        )
        assert bound.status_code == 201
        assert bound.json() == {"office_id": office["id"], "user_id": signup.json()["user"]["id"]}

        me = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token))
        assert me.status_code == 200
        assert me.json()["organizationId"] == org["organization"]["id"]
        assert me.json()["features"] == ["guards", "payroll"]

        again = api_client.client.post(
            f"/api/v1/organizations/offices/{office['id']}/members",
            json={"email": f"hire-{s}@example.com"},
            headers=admin_headers,
        )
        assert again.status_code == 409

    def test_duplicate_signup_is_409(self, api_client):
        s = _suffix()
        body = {"email": f"twice-{s}@example.com", "user_name": f"twice_{s}", "password": "twice-password"}
        assert api_client.client.post("/api/v1/auth/signup", json=body).status_code == 201
        resp = api_client.client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_me_for_superadmin(self, api_client):
        resp = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(api_client.super_token))
        assert resp.status_code == 200
        data = resp.json()
        assert data["isSuperAdmin"] is True
        assert data["organizationId"] is None

    @pytest.mark.parametrize("header", [None, "Bearer", "Basic abc", "Bearer not-a-jwt"])
    def test_me_without_valid_credential(self, api_client, header):
        headers = {"Authorization": header} if header else {}
        resp = api_client.client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"


class TestOrganizationAccess:
    def test_register_requires_superadmin(self, api_client, organization):
        _org, email, password = organization
        token = _login(api_client, email, password).json()["token"]
        s = _suffix()
        resp = api_client.client.post(
            "/api/v1/organizations/register",
            json={
                "organization_name": "Nope",
                "email": f"nope-{s}@example.com",
                "user_name": f"nope_{s}",
                "password": "nope-password",
                "features": ["guards"],
            },
            headers=api_client.auth(token),
        )
        # organizationAdmin on a route that is not organization-scoped gets no context.
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Organization context missing"

    def test_register_without_features_is_422(self, api_client):
        s = _suffix()
        resp = api_client.client.post(
            "/api/v1/organizations/register",
            json={
                "organization_name": "Empty",
                "email": f"empty-{s}@example.com",
                "user_name": f"empty_{s}",
                "password": "empty-password",
                "features": [],
            },
            headers=api_client.auth(api_client.super_token),
        )
        assert resp.status_code == 422

    def test_org_admin_manages_own_offices(self, api_client, organization):
        org, email, password = organization
        headers = api_client.auth(_login(api_client, email, password).json()["token"])

        created = api_client.client.post("/api/v1/organizations/offices", json={"name": "North"}, headers=headers)
        assert created.status_code == 201
        office = created.json()
        assert office["organization_id"] == org["organization"]["id"]
        assert len(office["branch_code"]) == 4

        listed = api_client.client.get("/api/v1/organizations/offices", headers=headers)
        assert [o["id"] for o in listed.json()] == [office["id"]]

        deleted = api_client.client.delete(f"/api/v1/organizations/offices/{office['id']}", headers=headers)
        assert deleted.status_code == 204

    def test_org_admin_cannot_delete_other_orgs_office(self, api_client, organization):
        _org, email, password = organization
        other_org, other_email, other_password = _register(api_client)
        other_headers = api_client.auth(_login(api_client, other_email, other_password).json()["token"])
        office = api_client.client.post(
            "/api/v1/organizations/offices", json={"name": "Theirs"}, headers=other_headers
        ).json()

        headers = api_client.auth(_login(api_client, email, password).json()["token"])
        resp = api_client.client.delete(f"/api/v1/organizations/offices/{office['id']}", headers=headers)
        assert resp.status_code == 404

    def test_org_admin_cannot_bind_into_other_orgs_office(self, api_client, organization):
        _org, email, password = organization
        _other_org, other_email, other_password = _register(api_client)
        other_headers = api_client.auth(_login(api_client, other_email, other_password).json()["token"])
        office = api_client.client.post(
            "/api/v1/organizations/offices", json={"name": "Theirs"}, headers=other_headers
        ).json()

        headers = api_client.auth(_login(api_client, email, password).json()["token"])
        resp = api_client.client.post(
            f"/api/v1/organizations/offices/{office['id']}/members", json={"email": email}, headers=headers
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Office not found"

    def test_binding_unknown_email_is_404(self, api_client, organization):
        _org, email, password = organization
        headers = api_client.auth(_login(api_client, email, password).json()["token"])
        office = api_client.client.post("/api/v1/organizations/offices", json={"name": "East"}, headers=headers).json()
        resp = api_client.client.post(
            f"/api/v1/organizations/offices/{office['id']}/members",
            json={"email": "nobody@example.com"},
            headers=headers,
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "User not found"

    def test_superadmin_cannot_use_org_scoped_routes(self, api_client):
        resp = api_client.client.get("/api/v1/organizations/offices", headers=api_client.auth(api_client.super_token))
        assert resp.status_code == 403

    def test_superadmin_reads_and_updates_organization(self, api_client, organization):
        org, _email, _password = organization
        org_id = org["organization"]["id"]
        headers = api_client.auth(api_client.super_token)

        assert api_client.client.get(f"/api/v1/organizations/{org_id}", headers=headers).status_code == 200
        resp = api_client.client.patch(
            f"/api/v1/organizations/{org_id}", json={"features": ["reports"], "city": "Quetta"}, headers=headers
        )
        assert resp.status_code == 200
        assert resp.json()["features"] == ["reports"]
        assert resp.json()["city"] == "Quetta"

    def test_unknown_organization_is_404(self, api_client):
        resp = api_client.client.get(
            "/api/v1/organizations/no-such-org", headers=api_client.auth(api_client.super_token)
        )
        assert resp.status_code == 404


class TestLiveClaims:
    def test_feature_change_reaches_old_token(self, api_client, organization):
        org, email, password = organization
        token = _login(api_client, email, password).json()["token"]
        api_client.client.patch(
            f"/api/v1/organizations/{org['organization']['id']}",
            json={"features": ["invoices"]},
            headers=api_client.auth(api_client.super_token),
        )
        me = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token))
        assert me.status_code == 200
        assert me.json()["features"] == ["invoices"]

    def test_deleted_user_token_refused(self, api_client, organization):
        org, email, password = organization
        token = _login(api_client, email, password).json()["token"]
        api_client.store.delete_user(org["admin_user_id"])
        me = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token))
        assert me.status_code == 401
        assert me.json()["error"]["message"] == "User not found"

    def test_deleted_organization_orphans_admin(self, api_client, organization):
        org, email, password = organization
        token = _login(api_client, email, password).json()["token"]
        resp = api_client.client.delete(
            f"/api/v1/organizations/{org['organization']['id']}", headers=api_client.auth(api_client.super_token)
        )
        assert resp.status_code == 204
        me = api_client.client.get("/api/v1/auth/me", headers=api_client.auth(token))
        assert me.status_code == 401
        assert me.json()["error"]["message"] == "User has no organization access"


def _register(api_client):
    s = _suffix()
    body = {
        "organization_name": f"Other {s}",
        "email": f"other-{s}@example.com",
        "user_name": f"other_{s}",
        "password": "other-password-1",
        "features": ["guards"],
    }
    resp = api_client.client.post(
        "/api/v1/organizations/register", json=body, headers=api_client.auth(api_client.super_token)
    )
    assert resp.status_code == 201, resp.text
    return resp.json(), body["email"], body["password"]
