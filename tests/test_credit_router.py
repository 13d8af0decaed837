import pytest
from unittest.mock import Mock

from dependency_injector import providers
from fastapi.testclient import TestClient

from creditapi.containers import Container
from creditapi.core.exceptions import StorageError
from creditapi.core.security import create_access_token
from creditapi.main import app


def _auth(user_id: str = "user-1", **claims) -> dict:
    token = create_access_token({"sub": user_id, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(stack):
    """실제 SQLite 서비스로 컨테이너 오버라이드"""
    container: Container = app.container  # type: ignore
    container.services.ledger_service.override(providers.Object(stack.ledger))
    container.services.balance_query_service.override(providers.Object(stack.query))
    yield TestClient(app)
    container.services.ledger_service.reset_override()
    container.services.balance_query_service.reset_override()


class TestCreditRoutes:
    """크레딧 라우터 테스트"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_requires_token(self, client):
        response = client.get("/api/v1/credits/balance")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_001"

    def test_rejects_bad_token(self, client):
        response = client.get(
            "/api/v1/credits/balance", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_get_balance(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.get("/api/v1/credits/balance", headers=_auth())

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "user-1"
        assert data["balance"] == 100

    def test_unknown_user_is_404(self, client):
        response = client.get("/api/v1/credits/balance", headers=_auth("ghost"))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CREDITS_USER_NOT_FOUND"

    def test_deduct_and_history(self, client, stack):
        stack.ledger.open_account("user-1")

        deduct = client.post(
            "/api/v1/credits/deduct",
            json={"amount": 15, "description": "image generation"},
            headers=_auth(),
        )
        history = client.get("/api/v1/credits/history?limit=5", headers=_auth())

        assert deduct.status_code == 200
        assert deduct.json()["new_balance"] == 85
        assert deduct.json()["replayed"] is False

        data = history.json()
        assert history.status_code == 200
        assert data["pagination"]["total"] == 1
        assert data["pagination"]["limit"] == 5
        assert data["transactions"][0]["amount"] == -15
        assert data["transactions"][0]["kind"] == "deduction"

    def test_deduct_insufficient_is_402(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.post(
            "/api/v1/credits/deduct",
            json={"amount": 130, "description": "long video"},
            headers=_auth(),
        )

        assert response.status_code == 402
        error = response.json()["error"]
        assert error["code"] == "CREDITS_INSUFFICIENT"
        assert error["details"] == {"current_balance": 100, "required": 130, "deficit": 30}
        assert stack.query.get_balance("user-1").balance == 100

    def test_deduct_with_idempotency_key(self, client, stack):
        stack.ledger.open_account("user-1")
        headers = {**_auth(), "Idempotency-Key": "gen-req-1"}
        body = {"amount": 10, "description": "text generation"}

        first = client.post("/api/v1/credits/deduct", json=body, headers=headers)
        retry = client.post("/api/v1/credits/deduct", json=body, headers=headers)

        assert first.json()["transaction_id"] == retry.json()["transaction_id"]
        assert retry.json()["replayed"] is True
        assert stack.query.get_balance("user-1").balance == 90

    @pytest.mark.parametrize(
        "body",
        [
            {"amount": 0, "description": "gen"},
            {"amount": -5, "description": "gen"},
            {"amount": 5, "description": ""},
        ],
    )
    def test_deduct_validation(self, client, stack, body):
        stack.ledger.open_account("user-1")

        response = client.post("/api/v1/credits/deduct", json=body, headers=_auth())

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_001"

    def test_deduct_over_ceiling(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.post(
            "/api/v1/credits/deduct",
            json={"amount": 20_000, "description": "gen"},
            headers=_auth(),
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "CREDITS_INVALID_AMOUNT"

    def test_check_credits_sufficient(self, client, stack):
        stack.ledger.open_account("user-1")

        response = client.get("/api/v1/credits/deduct?amount=40", headers=_auth())

        assert response.status_code == 200
        assert response.json() == {
            "has_sufficient_credits": True,
            "required_credits": 40,
            "current_balance": 100,
            "deficit": 0,
        }

    def test_check_credits_insufficient(self, client, stack):
        """부족해도 402가 아닌 안내용 결과, 잔액 변화 없음"""
        stack.ledger.open_account("user-1")

        response = client.get("/api/v1/credits/deduct?amount=130", headers=_auth())

        assert response.status_code == 200
        data = response.json()
        assert data["has_sufficient_credits"] is False
        assert data["deficit"] == 30
        assert stack.query.get_balance("user-1").balance == 100
        assert stack.query.get_history("user-1").pagination.total == 0

    @pytest.mark.parametrize("query", ["", "?amount=0", "?amount=-3"])
    def test_check_credits_validation(self, client, stack, query):
        stack.ledger.open_account("user-1")

        response = client.get(f"/api/v1/credits/deduct{query}", headers=_auth())

        assert response.status_code == 422

    def test_check_credits_requires_token(self, client):
        response = client.get("/api/v1/credits/deduct?amount=5")

        assert response.status_code == 401

    def test_idempotency_key_reused_for_other_amount_is_409(self, client, stack):
        stack.ledger.open_account("user-1")
        headers = {**_auth(), "Idempotency-Key": "gen-req-2"}

        client.post("/api/v1/credits/deduct", json={"amount": 10, "description": "gen"}, headers=headers)
        response = client.post(
            "/api/v1/credits/deduct", json={"amount": 50, "description": "gen"}, headers=headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CREDITS_IDEMPOTENCY_CONFLICT"
        assert stack.query.get_balance("user-1").balance == 90

    def test_storage_error_is_retryable_503(self, client):
        container: Container = app.container  # type: ignore
        failing_ledger = Mock()
        failing_ledger.deduct.side_effect = StorageError()
        container.services.ledger_service.override(providers.Object(failing_ledger))

        response = client.post(
            "/api/v1/credits/deduct",
            json={"amount": 5, "description": "gen"},
            headers=_auth(),
        )

        assert response.status_code == 503
        assert response.headers["retry-after"] == "1"
        error = response.json()["error"]
        assert error["code"] == "STORAGE_001"
        assert error["details"]["retryable"] is True

    def test_usage_rate_and_summary(self, client, stack):
        stack.ledger.open_account("user-1")
        stack.ledger.deduct("user-1", 90, "gen")

        usage = client.get("/api/v1/credits/usage-rate?days=30", headers=_auth())
        summary = client.get("/api/v1/credits/summary", headers=_auth())

        assert usage.json()["usage_rate"] == 3.0
        data = summary.json()
        assert data["current_balance"] == 10
        assert data["status"] == "low"
        assert data["low_balance_warning"] is not None

    def test_export_csv(self, client, stack):
        stack.ledger.open_account("user-1")
        stack.ledger.deduct("user-1", 1, "gen")

        response = client.get("/api/v1/credits/export?format=csv", headers=_auth())

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.splitlines()[0] == "id,created_at,kind,amount,balance_after,description"
