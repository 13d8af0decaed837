import csv
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from creditapi.config import LedgerConfig
from creditapi.core.exceptions import LedgerValidationError, UserNotFoundError
from creditapi.database.session import read_session
from creditapi.repositories.balance_repository import BalanceRepository
from creditapi.repositories.transaction_repository import TransactionRepository
from creditapi.schemas.credits import (
    BalancePoint,
    BalanceResponse,
    CreditSummaryResponse,
    HistoryFilters,
    HistoryResponse,
    UsageRateResponse,
)
from creditapi.schemas.pagination import PaginationMeta, clamp_limit

logger = logging.getLogger(__name__)

# 잔액 상태 구간 경계 (low 기준은 설정값)
MEDIUM_BALANCE_CEILING = 100

EXPORT_COLUMNS = ["id", "created_at", "kind", "amount", "balance_after", "description"]


class BalanceQueryService:
    """잔액/거래 내역 조회 서비스 - 상태를 변경하지 않음"""

    def __init__(self, session_factory: sessionmaker, config: LedgerConfig):
        self.session_factory = session_factory
        self.config = config

    def get_balance(self, user_id: str) -> BalanceResponse:
        """현재 잔액 조회

        Args:
            user_id: 사용자 ID

        Returns:
            BalanceResponse: 잔액과 마지막 변경 시각
        """
        with read_session(self.session_factory) as db:
            balance = BalanceRepository(db).get(user_id)
        if balance is None:
            raise UserNotFoundError(user_id)
        return balance

    def get_history(
        self, user_id: str, filters: Optional[HistoryFilters] = None
    ) -> HistoryResponse:
        """거래 내역 조회 (최신순, 페이지네이션)

        Args:
            user_id: 사용자 ID
            filters: 페이지/유형/기간 필터

        Returns:
            HistoryResponse: 거래 목록과 페이지네이션 정보
        """
        filters = filters or HistoryFilters()
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
        offset = (filters.page - 1) * limit

        with read_session(self.session_factory) as db:
            if BalanceRepository(db).get_balance_value(user_id) is None:
                raise UserNotFoundError(user_id)
            transactions, total = TransactionRepository(db).list_for_user(
                user_id=user_id,
                limit=limit,
                offset=offset,
                kind=filters.kind,
                start_date=filters.start_date,
                end_date=filters.end_date,
            )

        return HistoryResponse(
            transactions=transactions,
            pagination=PaginationMeta.build(page=filters.page, limit=limit, total=total),
        )

    def get_usage_rate(self, user_id: str, days: Optional[int] = None) -> UsageRateResponse:
        """최근 days일 동안의 일 평균 차감량"""
        days = self.config.usage_rate_days if days is None else days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise LedgerValidationError("days must be a positive integer", details={"days": days})

        since = datetime.now(timezone.utc) - timedelta(days=days)
        with read_session(self.session_factory) as db:
            if BalanceRepository(db).get_balance_value(user_id) is None:
                raise UserNotFoundError(user_id)
            used = TransactionRepository(db).sum_deductions_since(user_id, since)

        return UsageRateResponse(user_id=user_id, days=days, usage_rate=round(used / days, 2))

    def is_low_balance(self, balance: int, threshold: Optional[int] = None) -> bool:
        if threshold is None:
            threshold = self.config.low_balance_threshold
        return balance < threshold

    def low_balance_warning(self, balance: int, threshold: Optional[int] = None) -> Optional[str]:
        if self.is_low_balance(balance, threshold):
            return f"Your credit balance is low ({balance} credits). Please recharge soon."
        return None

    def credit_status(self, balance: int) -> str:
        if balance < self.config.low_balance_threshold:
            return "low"
        if balance < MEDIUM_BALANCE_CEILING:
            return "medium"
        return "high"

    def get_summary(self, user_id: str) -> CreditSummaryResponse:
        """잔액 요약 (총 적립/사용, 사용률, 상태)"""
        since = datetime.now(timezone.utc) - timedelta(days=self.config.usage_rate_days)
        with read_session(self.session_factory) as db:
            current_balance = BalanceRepository(db).get_balance_value(user_id)
            if current_balance is None:
                raise UserNotFoundError(user_id)

            transaction_repo = TransactionRepository(db)
            total_earned = transaction_repo.total_earned(user_id)
            total_spent = transaction_repo.total_spent(user_id)
            transaction_count = transaction_repo.aggregate_for_user(user_id).transaction_count
            used = transaction_repo.sum_deductions_since(user_id, since)

        return CreditSummaryResponse(
            user_id=user_id,
            current_balance=current_balance,
            total_earned=total_earned,
            total_spent=total_spent,
            transaction_count=transaction_count,
            usage_rate=round(used / self.config.usage_rate_days, 2),
            status=self.credit_status(current_balance),
            low_balance_warning=self.low_balance_warning(current_balance),
        )

    def get_balance_history(self, user_id: str, days: Optional[int] = None) -> List[BalancePoint]:
        """기간 내 거래별 잔액 추이 (현재 잔액에서 역산, 시간순 반환)"""
        days = self.config.usage_rate_days if days is None else days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise LedgerValidationError("days must be a positive integer", details={"days": days})

        since = datetime.now(timezone.utc) - timedelta(days=days)
        with read_session(self.session_factory) as db:
            current_balance = BalanceRepository(db).get_balance_value(user_id)
            if current_balance is None:
                raise UserNotFoundError(user_id)
            transactions = TransactionRepository(db).list_chronological(user_id, since=since)

        points: List[BalancePoint] = []
        running = current_balance
        for transaction in reversed(transactions):
            points.append(BalancePoint(at=transaction.created_at, balance=running))
            running -= transaction.amount
        points.reverse()
        return points

    def export_history(self, user_id: str, fmt: str = "csv", limit: Optional[int] = None) -> str:
        """거래 내역 내보내기 (csv 또는 json)"""
        if fmt not in ("csv", "json"):
            raise LedgerValidationError(
                f"Unsupported export format: {fmt}", details={"allowed": ["csv", "json"]}
            )
        limit = clamp_limit(limit, self.config.export_limit, self.config.export_limit)

        with read_session(self.session_factory) as db:
            if BalanceRepository(db).get_balance_value(user_id) is None:
                raise UserNotFoundError(user_id)
            transactions, _ = TransactionRepository(db).list_for_user(
                user_id=user_id, limit=limit, offset=0
            )

        logger.info(f"Exporting {len(transactions)} transactions for user {user_id} as {fmt}")

        if fmt == "json":
            return json.dumps(
                [entry.model_dump(mode="json") for entry in transactions],
                ensure_ascii=False,
                indent=2,
            )

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for entry in transactions:
            writer.writerow(
                [
                    entry.id,
                    entry.created_at.isoformat(),
                    entry.kind.value,
                    entry.amount,
                    entry.balance_after,
                    entry.description,
                ]
            )
        return buffer.getvalue()
