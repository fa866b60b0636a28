"""Integration tests for the team-scoped CRM record routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from httpx import AsyncClient


async def _shared_team_with_member(alice: AsyncClient, bob: AsyncClient) -> str:
    """Alice creates a shared team and adds Bob with the plain user role."""
    team = (await alice.post("/api/teams", json={"name": "Sales"})).json()
    resp = await alice.post(
        "/api/teams/current/members",
        json={"email": "bob@example.com", "role": "user"},
        headers={"X-Team-ID": team["id"]},
    )
    assert resp.status_code == 204, resp.text
    return team["id"]


@pytest.mark.integration
class TestCompanyRoutes:
    async def test_crud(self, authed_client: AsyncClient) -> None:
        created = await authed_client.post(
            "/api/companies", json={"name": "Acme", "website": "https://acme.test", "city": "Oslo"}
        )
        assert created.status_code == 201, created.text
        company = created.json()
        assert company["website"].startswith("https://acme.test")

        listed = await authed_client.get("/api/companies", params={"city": "Oslo"})
        assert [c["name"] for c in listed.json()] == ["Acme"]
        assert listed.headers["x-total-count"] == "1"

        patched = await authed_client.patch(
            f"/api/companies/{company['id']}", json={"notes": "key account"}
        )
        assert patched.status_code == 200
        assert patched.json()["notes"] == "key account"
        assert patched.json()["name"] == "Acme"

        assert (await authed_client.delete(f"/api/companies/{company['id']}")).status_code == 204
        assert (await authed_client.get(f"/api/companies/{company['id']}")).status_code == 404

    async def test_payload_cannot_set_team(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post("/api/companies", json={"name": "Acme", "team_id": "x"})
        assert resp.status_code == 422

    async def test_null_for_required_field_rejected(self, authed_client: AsyncClient) -> None:
        company = (await authed_client.post("/api/companies", json={"name": "Acme"})).json()
        resp = await authed_client.patch(f"/api/companies/{company['id']}", json={"name": None})
        assert resp.status_code == 422


@pytest.mark.integration
class TestCrossTenantIsolation:
    async def test_foreign_record_is_not_found(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        deal = (await alice.post("/api/deals", json={"name": "Big one", "amount": "100.00"})).json()

        assert (await bob.get(f"/api/deals/{deal['id']}")).status_code == 404
        patched = await bob.patch(f"/api/deals/{deal['id']}", json={"amount": "1.00"})
        assert patched.status_code == 404
        assert (await bob.delete(f"/api/deals/{deal['id']}")).status_code == 404
        assert (await bob.get("/api/deals")).json() == []

        unchanged = await alice.get(f"/api/deals/{deal['id']}")
        assert unchanged.json()["amount"] in ("100.00", "100.0", "100")

    async def test_selecting_foreign_team_forbidden(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        alice_team = (await alice.get("/api/auth/me")).json()["current_team_id"]

        resp = await bob.get("/api/companies", headers={"X-Team-ID": alice_team})
        assert resp.status_code == 403
        resp = await bob.get("/api/companies", params={"team": alice_team})
        assert resp.status_code == 403

    async def test_bulk_delete_with_foreign_id_deletes_nothing(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        own = (await alice.post("/api/companies", json={"name": "Acme"})).json()
        foreign = (await bob.post("/api/companies", json={"name": "Initech"})).json()

        resp = await alice.post(
            "/api/companies/bulk-delete", json={"ids": [own["id"], foreign["id"]]}
        )
        assert resp.status_code == 404
        assert len((await alice.get("/api/companies")).json()) == 1
        assert len((await bob.get("/api/companies")).json()) == 1

        resp = await alice.post("/api/companies/bulk-delete", json={"ids": [own["id"]]})
        assert resp.json() == {"deleted": 1}

    async def test_foreign_reference_rejected(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        foreign = (await bob.post("/api/companies", json={"name": "Initech"})).json()

        resp = await alice.post(
            "/api/contacts",
            json={"first_name": "Ann", "last_name": "Lee", "company_id": foreign["id"]},
        )
        assert resp.status_code == 404

    async def test_super_admin_cannot_reach_foreign_deal(self, app, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        alice_id = (await alice.get("/api/auth/me")).json()["id"]
        bob_team = (await bob.get("/api/auth/me")).json()["current_team_id"]
        await app.state.services.users.update_user(alice_id, {"is_super_admin": True})
        deal = (await bob.post("/api/deals", json={"name": "Big one", "amount": "100.00"})).json()

        # the gate would allow it, but the record is outside alice's team
        assert (await alice.delete(f"/api/deals/{deal['id']}")).status_code == 404
        assert (await alice.get(f"/api/deals/{deal['id']}")).status_code == 404
        resp = await alice.delete(f"/api/deals/{deal['id']}", headers={"X-Team-ID": bob_team})
        assert resp.status_code == 403

        kept = await bob.get(f"/api/deals/{deal['id']}")
        assert kept.status_code == 200
        assert kept.json()["name"] == "Big one"
        assert kept.json()["amount"] in ("100.00", "100.0", "100")

    async def test_list_reports_total_count(self, authed_client: AsyncClient) -> None:
        for name in ("Acme", "Globex", "Initech"):
            await authed_client.post("/api/companies", json={"name": name, "country": "NL"})

        resp = await authed_client.get("/api/companies", params={"country": "NL", "limit": 2})
        assert resp.status_code == 200
        assert len(resp.json()) == 2
        assert resp.headers["x-total-count"] == "3"


@pytest.mark.integration
class TestPermissionGateOverHttp:
    async def test_user_role_cannot_delete(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        team_id = await _shared_team_with_member(alice, bob)
        headers = {"X-Team-ID": team_id}

        contact = await bob.post(
            "/api/contacts", json={"first_name": "Ann", "last_name": "Lee"}, headers=headers
        )
        assert contact.status_code == 201
        contact_id = contact.json()["id"]
        assert contact.json()["full_name"] == "Ann Lee"

        assert (await bob.delete(f"/api/contacts/{contact_id}", headers=headers)).status_code == 403
        resp = await bob.post(
            "/api/contacts/bulk-delete", json={"ids": [contact_id]}, headers=headers
        )
        assert resp.status_code == 403
        assert (await bob.get(f"/api/contacts/{contact_id}", headers=headers)).status_code == 200

        resp = await alice.delete(f"/api/contacts/{contact_id}", headers=headers)
        assert resp.status_code == 204

    async def test_activity_subject_scoped(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        deal = (await alice.post("/api/deals", json={"name": "Renewal"})).json()

        ok = await alice.post(
            "/api/activities",
            json={"type": "call", "subject_type": "Deal", "subject_id": deal["id"]},
        )
        assert ok.status_code == 201

        missing = await alice.post(
            "/api/activities", json={"subject_type": "Deal", "subject_id": 999_999}
        )
        assert missing.status_code == 404

        half = await alice.post("/api/activities", json={"subject_type": "Deal"})
        assert half.status_code == 422
