import pytest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from creditapi.core.exceptions import (
    InsufficientCreditsError,
    InvalidAmountError,
    LedgerValidationError,
    UnauthorizedError,
)
from creditapi.models.admin import AdminOperationType
from creditapi.models.credits import TransactionKind
from creditapi.repositories.admin_operation_repository import AdminOperationRepository
from creditapi.schemas.admin import (
    AdjustmentDirection,
    AdminIdentity,
    OperationLogFilters,
    RequestMetadata,
    RiskLevel,
)


@pytest.fixture
def metadata():
    return RequestMetadata(ip_address="203.0.113.7", user_agent="pytest")


class TestAdjustCredits:
    def test_add_writes_transaction_and_audit_record(self, stack, admin_identity, metadata):
        """+50 조정: bonus 거래 1건, 감사 기록 before/after 차이 50"""
        stack.ledger.open_account("user-1")

        result = stack.admin.adjust_credits(
            admin=admin_identity,
            user_id="user-1",
            amount=50,
            description="bonus grant",
            direction=AdjustmentDirection.ADD,
            metadata=metadata,
            target_user_contact="user1@example.com",
        )

        assert result.new_balance == 150
        assert result.before_balance == 100
        assert result.audit_recorded is True
        assert result.warnings == []

        history = stack.query.get_history("user-1")
        assert history.pagination.total == 1
        entry = history.transactions[0]
        assert entry.amount == 50
        assert entry.kind == TransactionKind.BONUS
        assert entry.description == "[admin:ops-admin] bonus grant"

        logs = stack.admin.list_operation_logs()
        assert logs.pagination.total == 1
        record = logs.logs[0]
        assert record.operation_type == AdminOperationType.ADJUST_CREDITS
        assert record.admin_identity == "ops-admin"
        assert record.target_user_id == "user-1"
        assert record.target_user_contact == "user1@example.com"
        assert record.credit_amount == 50
        assert record.after_balance - record.before_balance == 50
        assert record.ip_address == "203.0.113.7"
        assert record.user_agent == "pytest"

    def test_subtract_is_deduction(self, stack, admin_identity):
        stack.ledger.open_account("user-1")

        result = stack.admin.adjust_credits(
            admin_identity, "user-1", 30, "abuse correction", "subtract"
        )

        assert result.new_balance == 70
        assert result.before_balance == 100
        entry = stack.query.get_history("user-1").transactions[0]
        assert entry.amount == -30
        assert entry.kind == TransactionKind.DEDUCTION

    def test_subtract_cannot_go_negative(self, stack, admin_identity):
        stack.ledger.open_account("user-1")

        with pytest.raises(InsufficientCreditsError):
            stack.admin.adjust_credits(admin_identity, "user-1", 101, "too much", "subtract")

        assert stack.admin.list_operation_logs().pagination.total == 0

    def test_requires_admin(self, stack):
        stack.ledger.open_account("user-1")
        not_admin = AdminIdentity(username="someone", is_admin=False)

        with pytest.raises(UnauthorizedError):
            stack.admin.adjust_credits(not_admin, "user-1", 10, "bonus", "add")

        assert stack.query.get_balance("user-1").balance == 100

    @pytest.mark.parametrize("amount", [0, -5, True, 2.5])
    def test_rejects_non_positive_amount(self, stack, admin_identity, amount):
        stack.ledger.open_account("user-1")

        with pytest.raises(InvalidAmountError):
            stack.admin.adjust_credits(admin_identity, "user-1", amount, "bonus", "add")

    def test_rejects_unknown_direction(self, stack, admin_identity):
        with pytest.raises(LedgerValidationError):
            stack.admin.adjust_credits(admin_identity, "user-1", 10, "bonus", "double")

    def test_marker_must_fit_description_limit(self, stack, admin_identity):
        stack.ledger.open_account("user-1")

        with pytest.raises(LedgerValidationError):
            stack.admin.adjust_credits(admin_identity, "user-1", 10, "x" * 495, "add")

    def test_audit_write_failure_keeps_ledger_change(self, stack, admin_identity):
        """감사 기록 실패는 경고로 보고하고 원장 거래는 유지"""
        stack.ledger.open_account("user-1")
        error = OperationalError("INSERT admin_operation_records", {}, Exception("disk full"))

        with patch.object(AdminOperationRepository, "append", side_effect=error):
            result = stack.admin.adjust_credits(admin_identity, "user-1", 50, "bonus", "add")

        assert result.audit_recorded is False
        assert len(result.warnings) == 1
        assert "user-1" in result.warnings[0]
        assert stack.query.get_balance("user-1").balance == 150
        assert stack.admin.list_operation_logs().pagination.total == 0


class TestOperationLogs:
    def test_record_operation_and_filters(self, stack, admin_identity, metadata):
        other = AdminIdentity(username="second-admin", is_admin=True)
        stack.ledger.open_account("user-1")

        stack.admin.record_operation(admin_identity, AdminOperationType.LOGIN, "login", metadata)
        stack.admin.adjust_credits(admin_identity, "user-1", 10, "bonus", "add", metadata)
        stack.admin.record_operation(other, "create_member", "created user-2", target_user_id="user-2")
        stack.admin.record_operation(admin_identity, AdminOperationType.LOGOUT, "logout", metadata)

        everything = stack.admin.list_operation_logs()
        mine = stack.admin.list_operation_logs(OperationLogFilters(admin_identity="ops-admin"))
        adjustments = stack.admin.list_operation_logs(
            OperationLogFilters(operation_type=AdminOperationType.ADJUST_CREDITS)
        )
        for_target = stack.admin.list_operation_logs(OperationLogFilters(target_user_id="user-2"))
        oldest_first = stack.admin.list_operation_logs(OperationLogFilters(sort_order="asc"))

        assert everything.pagination.total == 4
        assert everything.logs[0].operation_type == AdminOperationType.LOGOUT
        assert mine.pagination.total == 3
        assert adjustments.pagination.total == 1
        assert for_target.logs[0].admin_identity == "second-admin"
        assert oldest_first.logs[0].operation_type == AdminOperationType.LOGIN

    def test_pagination(self, stack, admin_identity):
        for i in range(5):
            stack.admin.record_operation(admin_identity, "login", f"login {i}")

        page = stack.admin.list_operation_logs(OperationLogFilters(page=2, limit=2))

        assert len(page.logs) == 2
        assert page.pagination.total == 5
        assert page.pagination.total_pages == 3
        assert page.pagination.has_next is True
        assert page.pagination.has_prev is True

    def test_record_operation_requires_admin(self, stack):
        with pytest.raises(UnauthorizedError):
            stack.admin.record_operation(AdminIdentity(username="x"), "login", "login")


class TestLargeOperationAlerts:
    @pytest.fixture
    def adjusted(self, stack, admin_identity):
        stack.ledger.open_account("user-1")
        for amount in (100, 600, 1500, 2500):
            stack.admin.adjust_credits(admin_identity, "user-1", amount, "grant", "add")
        stack.admin.adjust_credits(admin_identity, "user-1", 700, "claw back", "subtract")
        return stack

    def test_alerts_ordered_by_magnitude(self, adjusted):
        alerts = adjusted.admin.list_large_operation_alerts()

        assert [a.credit_amount for a in alerts.alerts] == [2500, 1500, -700, 600]
        assert [a.risk_level for a in alerts.alerts] == [
            RiskLevel.HIGH,
            RiskLevel.MEDIUM,
            RiskLevel.LOW,
            RiskLevel.LOW,
        ]
        assert alerts.pagination.total == 4

    def test_filter_by_risk_level(self, adjusted):
        high = adjusted.admin.list_large_operation_alerts(risk_level=RiskLevel.HIGH)
        medium = adjusted.admin.list_large_operation_alerts(risk_level="MEDIUM")
        low = adjusted.admin.list_large_operation_alerts(risk_level=RiskLevel.LOW)

        assert [a.credit_amount for a in high.alerts] == [2500]
        assert [a.credit_amount for a in medium.alerts] == [1500]
        assert [a.credit_amount for a in low.alerts] == [-700, 600]
