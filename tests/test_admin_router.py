import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from creditapi.containers import Container
from creditapi.core.security import create_access_token
from creditapi.main import app


def _admin_headers(username: str = "ops-admin") -> dict:
    token = create_access_token({"sub": "admin-1", "username": username, "is_admin": True})
    return {"Authorization": f"Bearer {token}"}


def _user_headers() -> dict:
    token = create_access_token({"sub": "user-1"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(stack):
    container: Container = app.container  # type: ignore
    container.services.balance_query_service.override(providers.Object(stack.query))
    container.services.reconciliation_service.override(providers.Object(stack.reconciliation))
    container.services.admin_credit_service.override(providers.Object(stack.admin))
    yield TestClient(app)
    container.services.balance_query_service.reset_override()
    container.services.reconciliation_service.reset_override()
    container.services.admin_credit_service.reset_override()


class TestAdminRoutes:
    """관리자 라우터 테스트"""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/v1/admin/credits/balance/user-1"),
            ("get", "/api/v1/admin/credits/history/user-1"),
            ("get", "/api/v1/admin/audit/balance-check"),
            ("get", "/api/v1/admin/audit/logs"),
            ("get", "/api/v1/admin/audit/alerts"),
        ],
    )
    def test_non_admin_is_forbidden(self, client, method, path):
        response = getattr(client, method)(path, headers=_user_headers())

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_002"

    def test_adjust_requires_admin(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.post(
            "/api/v1/admin/credits/adjust",
            json={"user_id": "user-1", "amount": 50, "description": "bonus", "direction": "add"},
            headers=_user_headers(),
        )

        assert response.status_code == 403
        assert stack.query.get_balance("user-1").balance == 100

    def test_adjust_records_request_metadata(self, client, stack):
        stack.ledger.open_account("user-1")
        headers = {
            **_admin_headers(),
            "X-Forwarded-For": "198.51.100.4, 10.0.0.1",
            "User-Agent": "admin-console/1.0",
        }

        response = client.post(
            "/api/v1/admin/credits/adjust",
            json={
                "user_id": "user-1",
                "amount": 50,
                "description": "bonus grant",
                "direction": "add",
                "target_user_contact": "user1@example.com",
            },
            headers=headers,
        )
        logs = client.get("/api/v1/admin/audit/logs", headers=_admin_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["new_balance"] == 150
        assert data["before_balance"] == 100
        assert data["audit_recorded"] is True

        record = logs.json()["logs"][0]
        assert record["admin_identity"] == "ops-admin"
        assert record["ip_address"] == "198.51.100.4"
        assert record["user_agent"] == "admin-console/1.0"
        assert record["credit_amount"] == 50

    def test_adjust_invalid_direction(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.post(
            "/api/v1/admin/credits/adjust",
            json={"user_id": "user-1", "amount": 5, "description": "x", "direction": "up"},
            headers=_admin_headers(),
        )

        assert response.status_code == 422

    def test_user_balance_and_history(self, client, stack):
        stack.ledger.open_account("user-1")
        stack.ledger.deduct("user-1", 3, "gen")

        balance = client.get("/api/v1/admin/credits/balance/user-1", headers=_admin_headers())
        history = client.get("/api/v1/admin/credits/history/user-1", headers=_admin_headers())

        assert balance.json()["balance"] == 97
        assert history.json()["pagination"]["total"] == 1

    def test_balance_check_reports_drift(self, client, stack, corrupt_balance):
        stack.ledger.open_account("user-1")
        stack.ledger.open_account("user-2")
        corrupt_balance("user-2", 140)

        response = client.get("/api/v1/admin/audit/balance-check", headers=_admin_headers())
        single = client.get("/api/v1/admin/audit/balance-check/user-2", headers=_admin_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["imbalanced_users"] == 1
        assert data["results"][0]["user_id"] == "user-2"
        assert data["results"][0]["difference"] == 40
        assert single.json()["is_balanced"] is False

    def test_alerts(self, client, stack):
        stack.ledger.open_account("user-1")
        client.post(
            "/api/v1/admin/credits/adjust",
            json={"user_id": "user-1", "amount": 2500, "description": "migration", "direction": "add"},
            headers=_admin_headers(),
        )

        response = client.get("/api/v1/admin/audit/alerts", headers=_admin_headers())

        alerts = response.json()["alerts"]
        assert len(alerts) == 1
        assert alerts[0]["risk_level"] == "HIGH"
