import logging
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from sqlalchemy.orm import sessionmaker

from creditapi.config import LedgerConfig
from creditapi.core.exceptions import (
    LedgerValidationError,
    ReconciliationPartialFailure,
    UnauthorizedError,
)
from creditapi.database.session import read_session, session_scope
from creditapi.models.admin import AdminOperationType
from creditapi.models.credits import TransactionKind
from creditapi.repositories.admin_operation_repository import AdminOperationRepository
from creditapi.schemas.admin import (
    AdjustmentDirection,
    AdminIdentity,
    AlertListResponse,
    CreditAdjustmentResponse,
    LargeOperationAlert,
    OperationLogFilters,
    OperationLogResponse,
    RequestMetadata,
    RiskLevel,
)
from creditapi.schemas.credits import MAX_DESCRIPTION_LENGTH
from creditapi.schemas.pagination import PaginationMeta, clamp_limit
from creditapi.services.ledger_service import LedgerService, require_positive_amount

logger = logging.getLogger(__name__)

MEDIUM_RISK_OPERATION_THRESHOLD = 1000


class AdminCreditService:
    """관리자 크레딧 조정 및 감사 기록 서비스"""

    def __init__(
        self,
        session_factory: sessionmaker,
        config: LedgerConfig,
        ledger_service: LedgerService,
    ):
        self.session_factory = session_factory
        self.config = config
        self.ledger_service = ledger_service

    @staticmethod
    def _ensure_admin(admin: Optional[AdminIdentity]) -> AdminIdentity:
        if admin is None or not admin.is_admin:
            raise UnauthorizedError()
        return admin

    def adjust_credits(
        self,
        admin: AdminIdentity,
        user_id: str,
        amount: int,
        description: str,
        direction: Union[AdjustmentDirection, str],
        metadata: Optional[RequestMetadata] = None,
        target_user_contact: Optional[str] = None,
    ) -> CreditAdjustmentResponse:
        """관리자 수동 크레딧 지급/차감

        원장 처리 후 감사 기록을 별도로 남깁니다. 감사 기록 실패는
        원장 거래를 되돌리지 않고 warnings로 보고됩니다.

        Args:
            admin: 인증된 관리자 신원
            user_id: 대상 사용자 ID
            amount: 조정 금액 (양수)
            description: 조정 사유
            direction: add 또는 subtract
            metadata: 요청 IP/User-Agent

        Returns:
            CreditAdjustmentResponse: 거래 결과와 조정 전 잔액
        """
        admin = self._ensure_admin(admin)
        metadata = metadata or RequestMetadata()

        try:
            direction = AdjustmentDirection(direction)
        except ValueError:
            raise LedgerValidationError(
                "direction must be 'add' or 'subtract'", details={"direction": str(direction)}
            )
        amount = require_positive_amount(amount)

        if not isinstance(description, str) or not description.strip():
            raise LedgerValidationError("Description is required")
        marked_description = f"[admin:{admin.username}] {description.strip()}"
        if len(marked_description) > MAX_DESCRIPTION_LENGTH:
            raise LedgerValidationError(
                f"Description with admin marker must be at most {MAX_DESCRIPTION_LENGTH} characters",
                details={"length": len(marked_description)},
            )

        if direction == AdjustmentDirection.ADD:
            signed_amount, kind = amount, TransactionKind.BONUS
        else:
            signed_amount, kind = -amount, TransactionKind.DEDUCTION

        result = self.ledger_service.apply(user_id, signed_amount, kind, marked_description)
        before_balance = result.new_balance - signed_amount

        logger.info(
            f"Admin {admin.username} adjusted credits for user {user_id}: "
            f"{signed_amount:+d} ({before_balance} -> {result.new_balance})"
        )

        recorded, warning = self._write_record(
            admin=admin,
            operation_type=AdminOperationType.ADJUST_CREDITS,
            description=marked_description,
            metadata=metadata,
            target_user_id=user_id,
            target_user_contact=target_user_contact,
            credit_amount=signed_amount,
            before_balance=before_balance,
            after_balance=result.new_balance,
        )

        return CreditAdjustmentResponse(
            transaction_id=result.transaction_id,
            new_balance=result.new_balance,
            before_balance=before_balance,
            audit_recorded=recorded,
            warnings=[warning] if warning else [],
        )

    def record_operation(
        self,
        admin: AdminIdentity,
        operation_type: Union[AdminOperationType, str],
        description: str,
        metadata: Optional[RequestMetadata] = None,
        target_user_id: Optional[str] = None,
        target_user_contact: Optional[str] = None,
    ) -> bool:
        """로그인/로그아웃/회원 생성 등 관리자 작업 기록 (best-effort)"""
        admin = self._ensure_admin(admin)
        try:
            operation_type = AdminOperationType(operation_type)
        except ValueError:
            raise LedgerValidationError(f"Unknown operation type: {operation_type}")

        recorded, _ = self._write_record(
            admin=admin,
            operation_type=operation_type,
            description=description,
            metadata=metadata or RequestMetadata(),
            target_user_id=target_user_id,
            target_user_contact=target_user_contact,
        )
        return recorded

    def _write_record(
        self,
        admin: AdminIdentity,
        operation_type: AdminOperationType,
        description: str,
        metadata: RequestMetadata,
        target_user_id: Optional[str] = None,
        target_user_contact: Optional[str] = None,
        credit_amount: int = 0,
        before_balance: int = 0,
        after_balance: int = 0,
    ) -> Tuple[bool, Optional[str]]:
        try:
            with session_scope(self.session_factory) as db:
                AdminOperationRepository(db).append(
                    admin_identity=admin.username,
                    operation_type=operation_type,
                    description=description,
                    created_at=datetime.now(timezone.utc),
                    target_user_id=target_user_id,
                    target_user_contact=target_user_contact,
                    credit_amount=credit_amount,
                    before_balance=before_balance,
                    after_balance=after_balance,
                    ip_address=metadata.ip_address,
                    user_agent=metadata.user_agent,
                )
            return True, None
        except Exception as e:
            failure = ReconciliationPartialFailure(
                target_user_id, f"admin audit record not written: {str(e)}"
            )
            logger.error(
                f"Failed to record admin operation {operation_type.value} "
                f"by {admin.username}: {failure}"
            )
            return False, str(failure)

    def list_operation_logs(
        self, filters: Optional[OperationLogFilters] = None
    ) -> OperationLogResponse:
        """관리자 작업 기록 조회 (필터, 페이지네이션)"""
        filters = filters or OperationLogFilters()
        if filters.page < 1:
            raise LedgerValidationError("page must be >= 1", details={"page": filters.page})
        if (
            filters.start_date is not None
            and filters.end_date is not None
            and filters.start_date > filters.end_date
        ):
            raise LedgerValidationError("start_date must not be after end_date")

        limit = clamp_limit(
            filters.limit, self.config.default_page_limit, self.config.max_page_limit
        )
        with read_session(self.session_factory) as db:
            logs, total = AdminOperationRepository(db).list_filtered(
                limit=limit,
                offset=(filters.page - 1) * limit,
                admin_identity=filters.admin_identity,
                operation_type=filters.operation_type,
                target_user_id=filters.target_user_id,
                start_date=filters.start_date,
                end_date=filters.end_date,
                ascending=filters.sort_order == "asc",
            )

        return OperationLogResponse(
            logs=logs,
            pagination=PaginationMeta.build(page=filters.page, limit=limit, total=total),
        )

    def risk_level(self, credit_amount: int) -> RiskLevel:
        magnitude = abs(credit_amount)
        if magnitude >= self.config.high_risk_operation_threshold:
            return RiskLevel.HIGH
        if magnitude >= MEDIUM_RISK_OPERATION_THRESHOLD:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def list_large_operation_alerts(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        risk_level: Optional[Union[RiskLevel, str]] = None,
    ) -> AlertListResponse:
        """대량 크레딧 조정 알림 (|금액| 큰 순서)"""
        if page < 1:
            raise LedgerValidationError("page must be >= 1", details={"page": page})

        min_amount = self.config.large_operation_threshold
        max_amount = None
        if risk_level is not None:
            try:
                risk_level = RiskLevel(risk_level)
            except ValueError:
                raise LedgerValidationError(f"Unknown risk level: {risk_level}")
            if risk_level == RiskLevel.HIGH:
                min_amount = max(min_amount, self.config.high_risk_operation_threshold)
            elif risk_level == RiskLevel.MEDIUM:
                min_amount = max(min_amount, MEDIUM_RISK_OPERATION_THRESHOLD)
                max_amount = self.config.high_risk_operation_threshold
            else:
                max_amount = MEDIUM_RISK_OPERATION_THRESHOLD

        limit = clamp_limit(limit, self.config.default_page_limit, self.config.max_page_limit)
        with read_session(self.session_factory) as db:
            records, total = AdminOperationRepository(db).list_large_adjustments(
                min_amount=min_amount,
                max_amount=max_amount,
                limit=limit,
                offset=(page - 1) * limit,
            )

        alerts = [
            LargeOperationAlert(
                **record.model_dump(), risk_level=self.risk_level(record.credit_amount)
            )
            for record in records
        ]
        return AlertListResponse(
            alerts=alerts,
            pagination=PaginationMeta.build(page=page, limit=limit, total=total),
        )
