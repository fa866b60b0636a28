"""Integration tests for team, social and audit routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from httpx import AsyncClient


@pytest.mark.integration
class TestTeamRoutes:
    async def test_personal_team_listed(self, authed_client: AsyncClient) -> None:
        teams = (await authed_client.get("/api/teams")).json()
        assert len(teams) == 1
        assert teams[0]["personal_team"] is True

        current = (await authed_client.get("/api/teams/current")).json()
        assert current["id"] == teams[0]["id"]

    async def test_current_permissions(self, authed_client: AsyncClient) -> None:
        body = (await authed_client.get("/api/teams/current/permissions")).json()
        assert body["roles"] == ["admin"]
        assert "delete_any:Company" in body["permissions"]
        assert body["super_admin"] is False

    async def test_switch_team(self, authed_client: AsyncClient) -> None:
        team = (await authed_client.post("/api/teams", json={"name": "Sales"})).json()
        resp = await authed_client.post(f"/api/teams/{team['id']}/switch")
        assert resp.status_code == 200

        current = (await authed_client.get("/api/teams/current")).json()
        assert current["id"] == team["id"]
        me = (await authed_client.get("/api/auth/me")).json()
        assert me["current_team_id"] == team["id"]

    async def test_switch_to_foreign_team_forbidden(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        bob_team = (await bob.get("/api/teams/current")).json()["id"]
        assert (await alice.post(f"/api/teams/{bob_team}/switch")).status_code == 403

    async def test_member_management(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        bob_id = (await bob.get("/api/auth/me")).json()["id"]
        team = (await alice.post("/api/teams", json={"name": "Sales"})).json()
        headers = {"X-Team-ID": team["id"]}

        resp = await alice.post(
            "/api/teams/current/members", json={"email": "bob@example.com"}, headers=headers
        )
        assert resp.status_code == 204
        assert (await bob.get("/api/companies", headers=headers)).status_code == 200

        members = await bob.get("/api/teams/current/members", headers=headers)
        assert members.status_code == 200
        assert sorted(m["email"] for m in members.json()) == [
            "alice@example.com",
            "bob@example.com",
        ]
        assert "password_hash" not in members.json()[0]

        # plain users may not manage membership
        resp = await bob.post(
            "/api/teams/current/members", json={"email": "alice@example.com"}, headers=headers
        )
        assert resp.status_code == 403

        resp = await alice.delete(f"/api/teams/current/members/{bob_id}", headers=headers)
        assert resp.status_code == 204
        assert (await bob.get("/api/companies", headers=headers)).status_code == 403

    async def test_add_unknown_user(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post(
            "/api/teams/current/members", json={"email": "ghost@example.com"}
        )
        assert resp.status_code == 404

    async def test_roles(self, authed_client: AsyncClient) -> None:
        resp = await authed_client.post(
            "/api/teams/current/roles",
            json={"name": "auditor", "permissions": ["view_any:AuditLog"]},
        )
        assert resp.status_code == 201
        names = [r["name"] for r in (await authed_client.get("/api/teams/current/roles")).json()]
        assert names == ["admin", "auditor", "user"]

        bad = await authed_client.post(
            "/api/teams/current/roles", json={"name": "wild", "permissions": ["*:*"]}
        )
        assert bad.status_code == 422

    async def test_personal_team_cannot_be_deleted(self, authed_client: AsyncClient) -> None:
        assert (await authed_client.delete("/api/teams/current")).status_code == 403

    async def test_delete_shared_team(self, authed_client: AsyncClient) -> None:
        team = (await authed_client.post("/api/teams", json={"name": "Sales"})).json()
        headers = {"X-Team-ID": team["id"]}
        await authed_client.post("/api/companies", json={"name": "Acme"}, headers=headers)

        resp = await authed_client.delete("/api/teams/current", headers=headers)
        assert resp.status_code == 204
        remaining = [t["id"] for t in (await authed_client.get("/api/teams")).json()]
        assert team["id"] not in remaining
        assert (await authed_client.get("/api/companies", headers=headers)).status_code == 403


@pytest.mark.integration
class TestSocialRoutes:
    async def test_posts_and_comments(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")

        post = await alice.post("/api/posts", json={"content": "hello world"})
        assert post.status_code == 201
        post_id = post.json()["id"]

        comment = await alice.post("/api/comments", json={"post_id": post_id, "content": "first"})
        assert comment.status_code == 201
        listed = await alice.get("/api/comments", params={"post_id": post_id})
        assert [c["content"] for c in listed.json()] == ["first"]

        assert (await bob.get(f"/api/posts/{post_id}")).status_code == 404
        assert (await bob.get("/api/posts")).json() == []
        resp = await bob.post("/api/comments", json={"post_id": post_id, "content": "hi"})
        assert resp.status_code == 404

        assert (await alice.delete(f"/api/posts/{post_id}")).status_code == 204
        assert (await alice.get("/api/comments")).json() == []

    async def test_comment_length_limit(self, authed_client: AsyncClient) -> None:
        post = (await authed_client.post("/api/posts", json={"content": "hello"})).json()
        ok = await authed_client.post(
            "/api/comments", json={"post_id": post["id"], "content": "x" * 1000}
        )
        assert ok.status_code == 201
        too_long = await authed_client.post(
            "/api/comments", json={"post_id": post["id"], "content": "x" * 1001}
        )
        assert too_long.status_code == 422

    async def test_profile_upsert(self, authed_client: AsyncClient) -> None:
        assert (await authed_client.get("/api/profile")).status_code == 404

        created = await authed_client.put("/api/profile", json={"location": "Oslo"})
        assert created.status_code == 200
        updated = await authed_client.put("/api/profile", json={"bio": "Sales lead"})
        assert updated.json()["id"] == created.json()["id"]

        profile = (await authed_client.get("/api/profile")).json()
        assert profile["location"] == "Oslo"
        assert profile["bio"] == "Sales lead"

        assert (await authed_client.delete("/api/profile")).status_code == 204
        assert (await authed_client.get("/api/profile")).status_code == 404


@pytest.mark.integration
class TestAuditRoutes:
    async def test_mutations_are_audited(self, authed_client: AsyncClient) -> None:
        company = (await authed_client.post("/api/companies", json={"name": "Acme"})).json()
        await authed_client.patch(f"/api/companies/{company['id']}", json={"city": "Oslo"})

        resp = await authed_client.get("/api/audit", params={"resource_type": "Company"})
        entries = resp.json()
        assert {e["action"] for e in entries} == {"company.create", "company.update"}

    async def test_audit_requires_permission(self, make_client) -> None:
        alice = await make_client("alice@example.com")
        bob = await make_client("bob@example.com")
        team = (await alice.post("/api/teams", json={"name": "Sales"})).json()
        headers = {"X-Team-ID": team["id"]}
        await alice.post(
            "/api/teams/current/members", json={"email": "bob@example.com"}, headers=headers
        )
        assert (await bob.get("/api/audit", headers=headers)).status_code == 403
        assert (await alice.get("/api/audit", headers=headers)).status_code == 200
