"""
Integration tests for company sign-up, team login and sessions.
"""

import pytest
from httpx import AsyncClient

from backflow.models import AuditLog, TeamUser
from conftest import TEST_PASSWORD

pytestmark = pytest.mark.integration

REGISTRATION = {
    "name": "Puget Sound Backflow, LLC",
    "email": "office@pugetbackflow.com",
    "phone": "253-555-0110",
    "addressLine1": "400 Pacific Ave",
    "city": "Tacoma",
    "state": "WA",
    "zipCode": "98402",
    "licenseNumber": "BAT-1234",
    "adminFirstName": "Dana",
    "adminLastName": "Reyes",
    "adminEmail": "Dana@PugetBackflow.com",
    "adminPassword": "Correct-Horse-42",
    "planType": "starter",
}


@pytest.mark.asyncio
class TestCompanyRegistration:
    async def test_register_creates_company_admin_and_session(self, client: AsyncClient):
        response = await client.post("/api/team/company/register", json=REGISTRATION)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["company"]["slug"] == "puget-sound-backflow-llc"
        assert data["company"]["subscription_status"] == "trialing"
        assert data["company"]["plan"] == "starter"
        assert data["user"]["email"] == "dana@pugetbackflow.com"
        assert data["user"]["role"] == "admin"
        assert "team_session" in response.cookies

        me = await client.get("/api/team/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["company_id"] == data["company"]["id"]

    async def test_register_reports_every_missing_field(self, client: AsyncClient):
        response = await client.post("/api/team/company/register", json={"name": "Solo"})

        assert response.status_code == 400
        details = response.json()["detail"]["details"]
        assert "Company email is required" in details
        assert "Admin password is required" in details

    async def test_duplicate_company_email(self, client: AsyncClient, company):
        payload = dict(REGISTRATION, email=company.email)
        response = await client.post("/api/team/company/register", json=payload)
        assert response.status_code == 409

    async def test_slug_collision_gets_suffix(self, client: AsyncClient, db):
        from conftest import make_company

        make_company(db, name="Puget Sound Backflow LLC", slug="puget-sound-backflow-llc")
        response = await client.post("/api/team/company/register", json=REGISTRATION)
        assert response.status_code == 201
        assert response.json()["company"]["slug"] == "puget-sound-backflow-llc-1"


@pytest.mark.asyncio
class TestTeamLogin:
    async def test_login_success(self, client: AsyncClient, admin_user, db):
        response = await client.post(
            "/api/team/auth/login", json={"email": "Admin@FisherBackflows.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == admin_user.id
        assert data["company_name"] == "Fisher Backflows"
        assert data["token"]
        assert "team_session" in response.cookies
        assert db.query(AuditLog).filter(AuditLog.event_type == "auth.login.success").count() == 1

    async def test_wrong_password(self, client: AsyncClient, admin_user, db):
        response = await client.post(
            "/api/team/auth/login", json={"email": admin_user.email, "password": "Wrong-Password-99"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        db.refresh(admin_user)
        assert admin_user.failed_login_attempts == 1

    async def test_unknown_email_looks_like_wrong_password(self, client: AsyncClient):
        response = await client.post(
            "/api/team/auth/login", json={"email": "nobody@example.com", "password": TEST_PASSWORD}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    async def test_short_password_rejected_before_lookup(self, client: AsyncClient, admin_user, db):
        response = await client.post("/api/team/auth/login", json={"email": admin_user.email, "password": "short"})
        assert response.status_code == 401
        db.refresh(admin_user)
        assert admin_user.failed_login_attempts == 0

    async def test_lockout_after_three_failures(self, client: AsyncClient, admin_user, db):
        for _ in range(3):
            await client.post(
                "/api/team/auth/login", json={"email": admin_user.email, "password": "Wrong-Password-99"}
            )

        response = await client.post(
            "/api/team/auth/login", json={"email": admin_user.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 401
        assert "locked" in response.json()["detail"].lower()
        db.refresh(admin_user)
        assert admin_user.account_locked_until is not None

    async def test_disabled_account(self, client: AsyncClient, admin_user, db):
        admin_user.is_active = False
        db.commit()
        response = await client.post(
            "/api/team/auth/login", json={"email": admin_user.email, "password": TEST_PASSWORD}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is disabled"

    async def test_login_rate_limited(self, client: AsyncClient):
        for _ in range(5):
            await client.post("/api/team/auth/login", json={"email": "x@example.com", "password": TEST_PASSWORD})
        response = await client.post(
            "/api/team/auth/login", json={"email": "x@example.com", "password": TEST_PASSWORD}
        )
        assert response.status_code == 429
        assert "Retry-After" in response.headers


@pytest.mark.asyncio
class TestSessions:
    async def test_me_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/team/auth/me")
        assert response.status_code == 401

    async def test_garbage_token(self, client: AsyncClient, admin_user):
        response = await client.get("/api/team/auth/me", headers={"Authorization": "Bearer not-a-session"})
        assert response.status_code == 401

    async def test_logout_revokes_session(self, client: AsyncClient, admin_headers):
        assert (await client.get("/api/team/auth/me", headers=admin_headers)).status_code == 200

        response = await client.post("/api/team/auth/logout", headers=admin_headers)
        assert response.status_code == 200

        assert (await client.get("/api/team/auth/me", headers=admin_headers)).status_code == 401


@pytest.mark.asyncio
class TestTeamAdministration:
    async def test_list_users_is_company_scoped(self, client: AsyncClient, db, admin_headers, technician, other_company):
        from conftest import make_user

        make_user(db, other_company, "owner@rival.com")
        response = await client.get("/api/team/users", headers=admin_headers)

        assert response.status_code == 200
        emails = {u["email"] for u in response.json()}
        assert emails == {"admin@fisherbackflows.com", "tech@fisherbackflows.com"}

    async def test_technician_cannot_change_roles(self, client: AsyncClient, tech_headers, admin_user):
        response = await client.patch(f"/api/team/users/{admin_user.id}", json={"role": "technician"}, headers=tech_headers)
        assert response.status_code == 403

    async def test_admin_cannot_demote_self(self, client: AsyncClient, admin_headers, admin_user):
        response = await client.patch(
            f"/api/team/users/{admin_user.id}", json={"role": "technician"}, headers=admin_headers
        )
        assert response.status_code == 400

    async def test_admin_promotes_technician(self, client: AsyncClient, admin_headers, technician, db):
        response = await client.patch(
            f"/api/team/users/{technician.id}", json={"role": "manager"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["role"] == "manager"
        assert db.get(TeamUser, technician.id).role == "manager"

    async def test_invitation_round_trip(self, client: AsyncClient, admin_headers, monkeypatch):
        from backflow.domain.team import service as team_service

        sent = {}

        async def fake_send(**kwargs):
            sent.update(kwargs)

        monkeypatch.setattr(team_service, "send_team_invitation", fake_send)

        response = await client.post(
            "/api/team/invitations", json={"email": "New.Tech@Example.com", "role": "technician"}, headers=admin_headers
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        assert sent["to"] == "new.tech@example.com"

        accepted = await client.post(
            "/api/team/invitations/accept",
            json={"token": sent["token"], "password": TEST_PASSWORD, "first_name": "New", "last_name": "Tech"},
        )
        assert accepted.status_code == 200
        assert accepted.json()["user"]["role"] == "technician"

        reused = await client.post(
            "/api/team/invitations/accept",
            json={"token": sent["token"], "password": TEST_PASSWORD, "first_name": "New", "last_name": "Tech"},
        )
        assert reused.status_code == 400
