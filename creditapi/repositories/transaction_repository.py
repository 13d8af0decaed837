"""
거래 원장 리포지토리 - Transaction Log 접근 (추가 전용)

이 리포지토리는 거래 행을 추가하거나 조회만 합니다. 수정/삭제 메서드는 없습니다.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func, select
from sqlalchemy.orm import Session

from creditapi.models.credits import CreditTransaction, TransactionKind
from creditapi.repositories.base import BaseRepository
from creditapi.schemas.credits import TransactionEntry


@dataclass(frozen=True)
class LedgerAggregate:
    """사용자별 원장 집계"""

    amount_sum: int
    transaction_count: int
    last_transaction_at: Optional[datetime]


class TransactionRepository(BaseRepository[CreditTransaction, TransactionEntry]):
    def __init__(self, db: Session):
        super().__init__(CreditTransaction, TransactionEntry, db)

    def append(
        self,
        user_id: str,
        amount: int,
        kind: TransactionKind,
        description: str,
        balance_after: int,
        created_at: datetime,
        idempotency_key: Optional[str] = None,
    ) -> TransactionEntry:
        return self.add(
            user_id=user_id,
            amount=amount,
            kind=kind.value,
            description=description,
            balance_after=balance_after,
            idempotency_key=idempotency_key,
            created_at=created_at,
        )

    def find_by_idempotency_key(
        self, user_id: str, idempotency_key: str
    ) -> Optional[TransactionEntry]:
        instance = self.db.execute(
            select(self.model_class).where(
                self.model_class.user_id == user_id,
                self.model_class.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        return self._to_schema(instance)

    def _filters(
        self,
        user_id: str,
        kind: Optional[TransactionKind] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        conditions = [self.model_class.user_id == user_id]
        if kind is not None:
            conditions.append(self.model_class.kind == kind.value)
        if start_date is not None:
            conditions.append(self.model_class.created_at >= start_date)
        if end_date is not None:
            conditions.append(self.model_class.created_at <= end_date)
        return and_(*conditions)

    def list_for_user(
        self,
        user_id: str,
        limit: int,
        offset: int,
        kind: Optional[TransactionKind] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Tuple[List[TransactionEntry], int]:
        """최신순 거래 내역과 필터 적용 전체 건수"""
        condition = self._filters(user_id, kind, start_date, end_date)

        total = self.db.execute(
            select(func.count(self.model_class.id)).where(condition)
        ).scalar_one()

        rows = self.db.execute(
            select(self.model_class)
            .where(condition)
            .order_by(desc(self.model_class.created_at), desc(self.model_class.id))
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return self._to_schemas(rows), int(total or 0)

    def list_chronological(
        self, user_id: str, since: Optional[datetime] = None
    ) -> List[TransactionEntry]:
        query = select(self.model_class).where(self.model_class.user_id == user_id)
        if since is not None:
            query = query.where(self.model_class.created_at >= since)
        rows = self.db.execute(
            query.order_by(asc(self.model_class.created_at), asc(self.model_class.id))
        ).scalars().all()
        return self._to_schemas(rows)

    def aggregate_for_user(self, user_id: str) -> LedgerAggregate:
        row = self.db.execute(
            select(
                func.coalesce(func.sum(self.model_class.amount), 0),
                func.count(self.model_class.id),
                func.max(self.model_class.created_at),
            ).where(self.model_class.user_id == user_id)
        ).one()
        return LedgerAggregate(
            amount_sum=int(row[0] or 0),
            transaction_count=int(row[1] or 0),
            last_transaction_at=row[2],
        )

    def sum_deductions_since(self, user_id: str, since: datetime) -> int:
        """기간 내 차감 총량 (절대값)"""
        result = self.db.execute(
            select(func.coalesce(func.sum(-self.model_class.amount), 0)).where(
                self.model_class.user_id == user_id,
                self.model_class.kind == TransactionKind.DEDUCTION.value,
                self.model_class.created_at >= since,
            )
        ).scalar_one()
        return int(result or 0)

    def total_earned(self, user_id: str) -> int:
        result = self.db.execute(
            select(func.coalesce(func.sum(self.model_class.amount), 0)).where(
                self.model_class.user_id == user_id,
                self.model_class.amount > 0,
            )
        ).scalar_one()
        return int(result or 0)

    def total_spent(self, user_id: str) -> int:
        result = self.db.execute(
            select(func.coalesce(func.sum(-self.model_class.amount), 0)).where(
                self.model_class.user_id == user_id,
                self.model_class.amount < 0,
            )
        ).scalar_one()
        return int(result or 0)
