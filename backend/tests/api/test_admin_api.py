"""Tests for /api/admin: access control, user credits, AI providers, catalogue and config."""

from decimal import Decimal

import pytest

from cvbuilder.services import credit_service

pytestmark = pytest.mark.integration

PROVIDER = {"name": "Claude", "type": "ANTHROPIC", "api_key": "sk-ant-REDACTED", "model": "claude-sonnet"}


@pytest.fixture
def admin(run, make_user):
    return run(make_user, email="admin@example.com", role="ADMIN")


class TestAccess:
    @pytest.mark.parametrize("path", ["/api/admin/users", "/api/admin/ai-providers", "/api/admin/config"])
    def test_regular_user_forbidden(self, api_client, run, make_user, auth_headers, path):
        user = run(make_user)
        response = api_client.get(path, headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_anonymous_unauthorized(self, api_client):
        assert api_client.get("/api/admin/users").status_code == 401


class TestUsers:
    def test_list_and_search(self, api_client, run, make_user, admin, auth_headers):
        run(make_user, email="grace@example.com", name="Grace Hopper")
        run(make_user, email="alan@example.com", name="Alan Turing")

        everyone = api_client.get("/api/admin/users", headers=auth_headers(admin)).json()
        assert everyone["total"] == 3

        found = api_client.get("/api/admin/users?search=hopper", headers=auth_headers(admin)).json()
        assert [u["email"] for u in found["users"]] == ["grace@example.com"]
        assert found["users"][0]["balance"] == "3.00"
        assert found["users"][0]["document_count"] == 0

    def test_pagination(self, api_client, run, make_user, admin, auth_headers):
        for _ in range(3):
            run(make_user)

        page = api_client.get("/api/admin/users?page=2&per_page=3", headers=auth_headers(admin)).json()

        assert page["total"] == 4
        assert len(page["users"]) == 1

    def test_grant_credits(self, api_client, run, make_user, admin, auth_headers):
        user = run(make_user)

        response = api_client.post(
            f"/api/admin/users/{user.id}/credits",
            headers=auth_headers(admin),
            json={"credits": 25, "reason": "Support goodwill"},
        )

        assert response.status_code == 200
        assert response.json()["balance"] == "28.00"
        usage = run(credit_service.recent_usage, user.id)
        assert usage[0].action == "ADMIN_GRANT"
        assert usage[0].details == {"granted_by": str(admin.id)}

    def test_grant_must_be_positive(self, api_client, run, make_user, admin, auth_headers):
        user = run(make_user)
        response = api_client.post(
            f"/api/admin/users/{user.id}/credits", headers=auth_headers(admin), json={"credits": 0, "reason": "x"}
        )
        assert response.status_code == 422

    def test_promote_user(self, api_client, run, make_user, admin, auth_headers):
        user = run(make_user)

        response = api_client.put(f"/api/admin/users/{user.id}/role", headers=auth_headers(admin), json={"role": "ADMIN"})

        assert response.status_code == 200
        assert response.json()["role"] == "ADMIN"
        assert api_client.get("/api/admin/users", headers=auth_headers(user)).status_code == 200

    def test_admin_cannot_demote_self(self, api_client, admin, auth_headers):
        response = api_client.put(f"/api/admin/users/{admin.id}/role", headers=auth_headers(admin), json={"role": "USER"})
        assert response.status_code == 400


class TestAIProviders:
    def test_api_key_is_masked(self, api_client, admin, auth_headers):
        created = api_client.post("/api/admin/ai-providers", headers=auth_headers(admin), json=PROVIDER)

        assert created.status_code == 201
        assert created.json()["api_key"] == "sk-a...mnop"

        listed = api_client.get("/api/admin/ai-providers", headers=auth_headers(admin)).json()
        assert listed[0]["api_key"] == "sk-a...mnop"

    def test_single_primary(self, api_client, admin, auth_headers):
        headers = auth_headers(admin)
        first = api_client.post("/api/admin/ai-providers", headers=headers, json={**PROVIDER, "is_primary": True}).json()
        second = api_client.post(
            "/api/admin/ai-providers",
            headers=headers,
            json={**PROVIDER, "name": "GPT", "type": "OPENAI", "model": "gpt-4o", "is_primary": True},
        ).json()

        providers = {p["id"]: p for p in api_client.get("/api/admin/ai-providers", headers=headers).json()}
        assert providers[first["id"]]["is_primary"] is False
        assert providers[second["id"]]["is_primary"] is True

    def test_update_and_delete(self, api_client, admin, auth_headers):
        headers = auth_headers(admin)
        provider_id = api_client.post("/api/admin/ai-providers", headers=headers, json=PROVIDER).json()["id"]

        updated = api_client.put(f"/api/admin/ai-providers/{provider_id}", headers=headers, json={"is_active": False})
        assert updated.json()["is_active"] is False

        assert api_client.delete(f"/api/admin/ai-providers/{provider_id}", headers=headers).status_code == 204
        assert api_client.get("/api/admin/ai-providers", headers=headers).json() == []

    def test_unknown_type(self, api_client, admin, auth_headers):
        response = api_client.post(
            "/api/admin/ai-providers", headers=auth_headers(admin), json={**PROVIDER, "type": "MISTRAL"}
        )
        assert response.status_code == 422


class TestCatalogue:
    def test_deleting_pack_deactivates_it(self, api_client, admin, auth_headers):
        headers = auth_headers(admin)
        created = api_client.post(
            "/api/admin/credit-packs",
            headers=headers,
            json={"slug": "mega", "name": "Mega", "credits": 1000, "price": "149.99"},
        )
        assert created.status_code == 201
        pack_id = created.json()["id"]

        assert any(p["slug"] == "mega" for p in api_client.get("/api/payments/credit-packs").json())

        assert api_client.delete(f"/api/admin/credit-packs/{pack_id}", headers=headers).status_code == 204

        assert all(p["slug"] != "mega" for p in api_client.get("/api/payments/credit-packs").json())
        admin_view = api_client.get("/api/admin/credit-packs", headers=headers).json()
        assert [p["active"] for p in admin_view if p["slug"] == "mega"] == [False]

    def test_duplicate_pack_slug(self, api_client, admin, auth_headers):
        response = api_client.post(
            "/api/admin/credit-packs",
            headers=auth_headers(admin),
            json={"slug": "starter", "name": "Starter again", "credits": 10, "price": "4.99"},
        )
        assert response.status_code == 409

    def test_promo_code_is_uppercased_and_redeemable(self, api_client, run, make_user, admin, auth_headers):
        created = api_client.post(
            "/api/admin/promo-codes", headers=auth_headers(admin), json={"code": "spring24", "credits": "10", "max_uses": 5}
        )
        assert created.status_code == 201
        assert created.json()["code"] == "SPRING24"

        user = run(make_user)
        redeemed = api_client.post("/api/payments/promo-code", headers=auth_headers(user), json={"code": "spring24"})
        assert redeemed.json()["balance"] == "13.00"

        listed = api_client.get("/api/admin/promo-codes", headers=auth_headers(admin)).json()
        assert listed[0]["used_count"] == 1

    def test_deactivated_template_hidden_from_users(self, api_client, run, template_id, admin, auth_headers):
        tid = str(run(template_id))
        headers = auth_headers(admin)

        assert api_client.delete(f"/api/admin/templates/{tid}", headers=headers).status_code == 204

        public = api_client.get("/api/jobs/templates", headers=headers).json()
        assert tid not in [t["id"] for t in public]
        assert tid in [t["id"] for t in api_client.get("/api/admin/templates", headers=headers).json()]


class TestSystemConfig:
    def test_cost_change_applies_to_generation(self, api_client, run, make_user, template_id, admin, auth_headers):
        response = api_client.put(
            "/api/admin/config/cv_generation_cost", headers=auth_headers(admin), json={"value": "2"}
        )
        assert response.status_code == 200
        assert response.json()["value"] == "2"

        user = run(make_user)
        generated = api_client.post(
            "/api/documents/cv",
            headers=auth_headers(user),
            json={"template_id": str(run(template_id)), "job_description": "Python engineer for billing systems."},
        )

        assert generated.json()["credits_used"] == "2.00"
        assert run(credit_service.get_balance, user.id) == Decimal("1.00")

    def test_lists_seeded_defaults(self, api_client, admin, auth_headers):
        keys = {item["key"] for item in api_client.get("/api/admin/config", headers=auth_headers(admin)).json()}
        assert {"free_credits", "cv_generation_cost", "low_credit_threshold", "watermark_free"} <= keys
