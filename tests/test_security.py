import importlib.util
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from starlette.requests import Request

from creditapi.core.auth_middleware import get_request_metadata, require_admin
from creditapi.core.exceptions import AuthenticationError, UnauthorizedError
from creditapi.core.security import TokenPayload, create_access_token, decode_access_token
from creditapi.schemas.admin import BalanceAuditResponse, BalanceAuditSummary

ROOT = Path(__file__).resolve().parents[1]


def _request(headers: dict, client=("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "user-1", "username": "kim", "is_admin": True})

        payload = decode_access_token(token)

        assert payload.sub == "user-1"
        assert payload.username == "kim"
        assert payload.is_admin is True

    def test_expired_token(self):
        token = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-10))

        with pytest.raises(AuthenticationError):
            decode_access_token(token)

    def test_missing_subject(self):
        token = create_access_token({"username": "kim"})

        with pytest.raises(AuthenticationError):
            decode_access_token(token)


class TestAuthDependencies:
    def test_require_admin(self):
        identity = require_admin(TokenPayload(sub="admin-1", username="ops", is_admin=True))

        assert identity.username == "ops"
        assert identity.is_admin is True

    def test_require_admin_falls_back_to_subject(self):
        identity = require_admin(TokenPayload(sub="admin-1", is_admin=True))

        assert identity.username == "admin-1"

    def test_require_admin_rejects_user(self):
        with pytest.raises(UnauthorizedError):
            require_admin(TokenPayload(sub="user-1"))

    def test_metadata_prefers_forwarded_for(self):
        request = _request({"x-forwarded-for": "1.2.3.4, 5.6.7.8", "x-real-ip": "9.9.9.9"})

        metadata = get_request_metadata(request)

        assert metadata.ip_address == "1.2.3.4"
        assert metadata.user_agent == "unknown"

    def test_metadata_falls_back(self):
        assert get_request_metadata(_request({"x-real-ip": "9.9.9.9"})).ip_address == "9.9.9.9"
        assert get_request_metadata(_request({})).ip_address == "10.0.0.9"
        assert get_request_metadata(_request({}, client=None)).ip_address == "unknown"


class TestReconciliationScript:
    @pytest.fixture
    def script(self):
        spec = importlib.util.spec_from_file_location(
            "run_reconciliation", ROOT / "scripts" / "run_reconciliation.py"
        )
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    @pytest.mark.parametrize(
        "imbalanced,failed,expected",
        [(0, 0, 0), (1, 0, 1), (0, 2, 1)],
    )
    def test_exit_code(self, script, imbalanced, failed, expected):
        report = BalanceAuditResponse(
            results=[],
            failures=[],
            summary=BalanceAuditSummary(
                total_users=3,
                balanced_users=3 - imbalanced - failed,
                imbalanced_users=imbalanced,
                failed_users=failed,
                total_difference=0,
                audited_at=datetime.now(timezone.utc),
            ),
        )

        assert script.exit_code_for(report) == expected
