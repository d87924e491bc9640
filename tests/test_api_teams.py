"""
tests/test_api_teams.py -- Integration tests for /api/v1/teams/*.

The member fixture user sits in "mkt" (root -> ops -> mkt), so it may read
mkt, ops and root but not eng. The admin sits in root and bypasses the
per-team check.
"""

from __future__ import annotations

import pytest
from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, MEMBER_EMAIL, MEMBER_PASSWORD, csrf_headers, login


@pytest.fixture
def member(api_client):
    login(api_client.client, MEMBER_EMAIL, MEMBER_PASSWORD)
    return api_client.client


@pytest.fixture
def admin(api_client):
    login(api_client.client, ADMIN_EMAIL, ADMIN_PASSWORD)
    return api_client.client


def _ids(items):
    return [t["id"] for t in items]


class TestAuthRequired:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/teams/root",
            "/api/v1/teams/tree",
            "/api/v1/teams/mkt/ancestors",
            "/api/v1/teams/mkt/access",
            "/api/v1/teams/common-ancestor?team_a=mkt&team_b=ops",
        ],
    )
    def test_requires_session(self, api_client, path):
        assert api_client.client.get(path).status_code == 401


class TestReads:
    def test_root(self, member):
        body = member.get("/api/v1/teams/root").json()
        assert (body["id"], body["is_root"], body["depth"]) == ("root", True, 0)

    def test_ancestors(self, member):
        resp = member.get("/api/v1/teams/mkt/ancestors")
        assert resp.status_code == 200
        assert [(t["id"], t["depth"]) for t in resp.json()] == [("ops", 1), ("root", 2)]

    def test_path(self, member):
        resp = member.get("/api/v1/teams/mkt/path")
        assert [(t["id"], t["depth"]) for t in resp.json()] == [("root", 0), ("ops", 1), ("mkt", 2)]

    def test_descendants_of_own_team(self, member):
        assert member.get("/api/v1/teams/mkt/descendants").json() == []

    def test_descendants_of_ancestor(self, member):
        resp = member.get("/api/v1/teams/ops/descendants")
        assert [(t["id"], t["depth"]) for t in resp.json()] == [("mkt", 1)]

    def test_children(self, member):
        assert _ids(member.get("/api/v1/teams/ops/children").json()) == ["mkt"]

    def test_tree_from_root(self, member):
        tree = member.get("/api/v1/teams/tree").json()
        assert tree["id"] == "root"
        assert {c["id"] for c in tree["children"]} == {"ops", "eng"}
        ops = next(c for c in tree["children"] if c["id"] == "ops")
        assert [(c["id"], c["depth"]) for c in ops["children"]] == [("mkt", 2)]

    def test_subtree(self, member):
        tree = member.get("/api/v1/teams/tree", params={"root_team_id": "ops"}).json()
        assert (tree["id"], tree["depth"]) == ("ops", 0)

    def test_common_ancestor(self, member):
        body = member.get("/api/v1/teams/common-ancestor", params={"team_a": "mkt", "team_b": "ops"}).json()
        assert body["id"] == "ops"


class TestAccessRule:
    def test_sibling_branch_is_forbidden(self, member):
        resp = member.get("/api/v1/teams/eng/ancestors")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_access_check_endpoint(self, member):
        assert member.get("/api/v1/teams/ops/access").json() == {
            "user_team_id": "mkt",
            "target_team_id": "ops",
            "allowed": True,
        }
        assert member.get("/api/v1/teams/eng/access").json()["allowed"] is False

    def test_descendant_team_forbidden_for_parent_member(self, api_client):
        client = api_client.client
        client.post(
            "/api/v1/auth/register",
            json={"email": "rooter@example.com", "password": "password-123", "first_name": "R", "last_name": "T"},
            headers=csrf_headers(client),
        )
        login(client, "rooter@example.com", "password-123")
        # Registered into root: may read root, not the teams below it.
        assert client.get("/api/v1/teams/root/ancestors").status_code == 200
        assert client.get("/api/v1/teams/ops/ancestors").status_code == 403

    def test_admin_bypasses_team_check(self, admin):
        assert admin.get("/api/v1/teams/eng/ancestors").status_code == 200

    def test_unknown_team_is_404_for_admin(self, admin):
        resp = admin.get("/api/v1/teams/ghost/path")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestWrites:
    def test_member_cannot_create(self, member):
        resp = member.post(
            "/api/v1/teams",
            json={"name": "Sales", "parent_id": "ops"},
            headers=csrf_headers(member),
        )
        assert resp.status_code == 403

    def test_admin_creates_team(self, admin):
        resp = admin.post(
            "/api/v1/teams",
            json={"name": "Sales", "description": "Field sales", "parent_id": "ops"},
            headers=csrf_headers(admin),
        )
        assert resp.status_code == 201
        team = resp.json()
        assert (team["name"], team["parent_id"], team["is_root"]) == ("Sales", "ops", False)
        children = admin.get("/api/v1/teams/ops/children").json()
        assert team["id"] in _ids(children)

    def test_create_under_unknown_parent_is_404(self, admin):
        resp = admin.post(
            "/api/v1/teams",
            json={"name": "Lost", "parent_id": "ghost"},
            headers=csrf_headers(admin),
        )
        assert resp.status_code == 404

    def test_create_requires_csrf(self, admin):
        resp = admin.post("/api/v1/teams", json={"name": "Sales", "parent_id": "ops"})
        assert resp.status_code == 403

    def test_rename(self, admin):
        resp = admin.patch("/api/v1/teams/ops", json={"name": "Operations & IT"}, headers=csrf_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Operations & IT"
        assert resp.json()["parent_id"] == "root"

    def test_move(self, admin):
        resp = admin.patch("/api/v1/teams/mkt", json={"parent_id": "eng"}, headers=csrf_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["parent_id"] == "eng"
        assert _ids(admin.get("/api/v1/teams/mkt/ancestors").json()) == ["eng", "root"]

    def test_move_into_descendant_is_400(self, admin):
        resp = admin.patch("/api/v1/teams/ops", json={"parent_id": "mkt"}, headers=csrf_headers(admin))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "hierarchy_cycle"

    def test_patch_unknown_team_is_404(self, admin):
        resp = admin.patch("/api/v1/teams/ghost", json={"name": "x"}, headers=csrf_headers(admin))
        assert resp.status_code == 404
