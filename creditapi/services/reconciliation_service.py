"""
잔액 대사 서비스

기대 잔액 = 가입 보너스 + Σ(거래 금액)
가입 보너스는 거래로 기록되지 않으므로 initial_grant는 registration_bonus와 같습니다.
대사는 읽기 전용이며 불일치를 자동 보정하지 않습니다.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from creditapi.config import LedgerConfig
from creditapi.core.exceptions import ReconciliationPartialFailure, UserNotFoundError
from creditapi.database.session import read_session
from creditapi.repositories.balance_repository import BalanceRepository
from creditapi.repositories.transaction_repository import TransactionRepository
from creditapi.schemas.admin import (
    BalanceAuditFailure,
    BalanceAuditResponse,
    BalanceAuditResult,
    BalanceAuditSummary,
)

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.01


class ReconciliationService:
    def __init__(self, session_factory: sessionmaker, config: LedgerConfig):
        self.session_factory = session_factory
        self.config = config

    @property
    def initial_grant(self) -> int:
        return self.config.registration_bonus

    def audit_all_balances(self) -> BalanceAuditResponse:
        """전체 사용자 잔액 대사

        사용자별 실패는 failures에 기록하고 계속 진행합니다.

        Returns:
            BalanceAuditResponse: 불일치 큰 순서의 결과, 실패 목록, 요약
        """
        results: List[BalanceAuditResult] = []
        failures: List[BalanceAuditFailure] = []

        for user_id in self._iter_user_ids():
            try:
                results.append(self._audit(user_id, replay=False))
            except Exception as e:
                failure = ReconciliationPartialFailure(user_id, str(e))
                logger.warning(f"Balance audit skipped: {failure}")
                failures.append(BalanceAuditFailure(user_id=user_id, error=failure.reason))

        results.sort(key=lambda r: abs(r.difference), reverse=True)

        imbalanced = [r for r in results if not r.is_balanced]
        summary = BalanceAuditSummary(
            total_users=len(results) + len(failures),
            balanced_users=len(results) - len(imbalanced),
            imbalanced_users=len(imbalanced),
            failed_users=len(failures),
            total_difference=sum(r.difference for r in imbalanced),
            audited_at=datetime.now(timezone.utc),
        )

        if imbalanced or failures:
            logger.warning(
                f"Balance audit found {summary.imbalanced_users} imbalanced and "
                f"{summary.failed_users} failed users "
                f"(total difference {summary.total_difference})"
            )
        else:
            logger.info(f"Balance audit passed for {summary.total_users} users")

        return BalanceAuditResponse(results=results, failures=failures, summary=summary)

    def audit_user(self, user_id: str) -> BalanceAuditResult:
        """단일 사용자 대사 (balance_after 재생 검증 포함)"""
        result = self._audit(user_id, replay=True)
        if not result.is_balanced or result.first_broken_transaction_id is not None:
            logger.warning(
                f"Balance drift for user {user_id}: difference {result.difference}, "
                f"first broken transaction {result.first_broken_transaction_id}"
            )
        return result

    def _iter_user_ids(self):
        after: Optional[str] = None
        while True:
            with read_session(self.session_factory) as db:
                batch = BalanceRepository(db).list_user_ids(
                    after=after, limit=self.config.audit_batch_size
                )
            if not batch:
                return
            yield from batch
            if len(batch) < self.config.audit_batch_size:
                return
            after = batch[-1]

    def _audit(self, user_id: str, replay: bool) -> BalanceAuditResult:
        with read_session(self.session_factory) as db:
            snapshot = BalanceRepository(db).get_snapshot(user_id)
            if snapshot is None:
                raise UserNotFoundError(user_id)

            first_broken_id = None
            if replay:
                # 재생은 balance_after 연속성만 검사 (스냅샷 이후 거래 포함 가능)
                running = self.initial_grant
                for entry in TransactionRepository(db).list_chronological(user_id):
                    running += entry.amount
                    if entry.balance_after != running:
                        first_broken_id = entry.id
                        break

        aggregate = snapshot.ledger
        calculated_balance = self.initial_grant + aggregate.amount_sum
        difference = snapshot.actual_balance - calculated_balance

        return BalanceAuditResult(
            user_id=user_id,
            calculated_balance=calculated_balance,
            actual_balance=snapshot.actual_balance,
            difference=difference,
            is_balanced=abs(difference) < BALANCE_TOLERANCE,
            transaction_count=aggregate.transaction_count,
            last_transaction_at=aggregate.last_transaction_at,
            first_broken_transaction_id=first_broken_id,
        )
