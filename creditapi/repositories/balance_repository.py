"""
잔액 리포지토리 - Balance Store 접근

잔액 변경은 apply_delta()의 단일 조건부 UPDATE로만 수행됩니다.
UPDATE가 해당 사용자 행을 잠그므로 같은 사용자에 대한 동시 차감이 직렬화됩니다.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, func, select, update
from sqlalchemy.orm import Session

from creditapi.models.credits import CreditBalance, CreditTransaction
from creditapi.repositories.base import BaseRepository
from creditapi.repositories.transaction_repository import LedgerAggregate
from creditapi.schemas.credits import BalanceResponse


@dataclass(frozen=True)
class BalanceSnapshot:
    """같은 시점에 읽은 잔액과 원장 집계"""

    actual_balance: int
    ledger: LedgerAggregate


class BalanceRepository(BaseRepository[CreditBalance, BalanceResponse]):
    def __init__(self, db: Session):
        super().__init__(CreditBalance, BalanceResponse, db)

    def get(self, user_id: str) -> Optional[BalanceResponse]:
        instance = self.db.get(self.model_class, user_id)
        return self._to_schema(instance)

    def get_balance_value(self, user_id: str) -> Optional[int]:
        """현재 잔액 값만 조회 (행이 없으면 None)"""
        return self.db.execute(
            select(self.model_class.balance).where(self.model_class.user_id == user_id)
        ).scalar_one_or_none()

    def get_snapshot(self, user_id: str) -> Optional[BalanceSnapshot]:
        """
        잔액과 거래 합계/건수/최근 시각을 한 문장으로 조회

        두 번 나눠 읽으면 사이에 커밋된 거래 때문에 불일치로 보일 수 있으므로
        상관 서브쿼리로 한 번에 읽습니다.
        """
        owned = CreditTransaction.user_id == self.model_class.user_id
        row = self.db.execute(
            select(
                self.model_class.balance,
                select(func.coalesce(func.sum(CreditTransaction.amount), 0))
                .where(owned)
                .scalar_subquery(),
                select(func.count(CreditTransaction.id)).where(owned).scalar_subquery(),
                select(func.max(CreditTransaction.created_at)).where(owned).scalar_subquery(),
            ).where(self.model_class.user_id == user_id)
        ).one_or_none()
        if row is None:
            return None
        return BalanceSnapshot(
            actual_balance=row[0],
            ledger=LedgerAggregate(
                amount_sum=int(row[1] or 0),
                transaction_count=int(row[2] or 0),
                last_transaction_at=row[3],
            ),
        )

    def current_timestamp(self) -> datetime:
        """거래 시각 기준 - Postgres는 DB 서버 시계 사용"""
        if self.db.get_bind().dialect.name == "postgresql":
            return self.db.execute(
                select(func.clock_timestamp(type_=DateTime(timezone=True)))
            ).scalar_one()
        # SQLite는 단일 파일 DB이므로 앱 시계로 충분
        return datetime.now(timezone.utc)

    def create(self, user_id: str, initial_balance: int, now: datetime) -> BalanceResponse:
        return self.add(
            user_id=user_id,
            balance=initial_balance,
            created_at=now,
            updated_at=now,
        )

    def apply_delta(self, user_id: str, amount: int, now: datetime) -> bool:
        """
        잔액에 amount를 원자적으로 반영

        결과 잔액이 음수가 되거나 행이 없으면 아무것도 바꾸지 않고 False 반환.
        """
        result = self.db.execute(
            update(self.model_class)
            .where(
                self.model_class.user_id == user_id,
                self.model_class.balance + amount >= 0,
            )
            .values(balance=self.model_class.balance + amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_user_ids(self, after: Optional[str], limit: int) -> List[str]:
        """user_id 순서로 키셋 페이지 조회 (대사 배치용)"""
        query = select(self.model_class.user_id).order_by(self.model_class.user_id)
        if after is not None:
            query = query.where(self.model_class.user_id > after)
        return list(self.db.execute(query.limit(limit)).scalars().all())
