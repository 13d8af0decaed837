from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, asc, desc, func, select, true
from sqlalchemy.orm import Session

from creditapi.models.admin import AdminOperationRecord, AdminOperationType
from creditapi.repositories.base import BaseRepository
from creditapi.schemas.admin import AdminOperationEntry


class AdminOperationRepository(BaseRepository[AdminOperationRecord, AdminOperationEntry]):
    """관리자 감사 기록 리포지토리 (추가 전용)"""

    def __init__(self, db: Session):
        super().__init__(AdminOperationRecord, AdminOperationEntry, db)

    def append(
        self,
        admin_identity: str,
        operation_type: AdminOperationType,
        description: str,
        created_at: datetime,
        target_user_id: Optional[str] = None,
        target_user_contact: Optional[str] = None,
        credit_amount: int = 0,
        before_balance: int = 0,
        after_balance: int = 0,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
    ) -> AdminOperationEntry:
        return self.add(
            admin_identity=admin_identity,
            operation_type=operation_type.value,
            target_user_id=target_user_id,
            target_user_contact=target_user_contact,
            credit_amount=credit_amount,
            before_balance=before_balance,
            after_balance=after_balance,
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=created_at,
        )

    def list_filtered(
        self,
        limit: int,
        offset: int,
        admin_identity: Optional[str] = None,
        operation_type: Optional[AdminOperationType] = None,
        target_user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        ascending: bool = False,
    ) -> Tuple[List[AdminOperationEntry], int]:
        conditions = []
        if admin_identity:
            conditions.append(self.model_class.admin_identity == admin_identity)
        if operation_type is not None:
            conditions.append(self.model_class.operation_type == operation_type.value)
        if target_user_id:
            conditions.append(self.model_class.target_user_id == target_user_id)
        if start_date is not None:
            conditions.append(self.model_class.created_at >= start_date)
        if end_date is not None:
            conditions.append(self.model_class.created_at <= end_date)
        condition = and_(true(), *conditions)

        total = self.db.execute(
            select(func.count(self.model_class.id)).where(condition)
        ).scalar_one()

        order = asc if ascending else desc
        rows = self.db.execute(
            select(self.model_class)
            .where(condition)
            .order_by(order(self.model_class.created_at), order(self.model_class.id))
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return self._to_schemas(rows), int(total or 0)

    def list_large_adjustments(
        self,
        min_amount: int,
        limit: int,
        offset: int,
        max_amount: Optional[int] = None,
    ) -> Tuple[List[AdminOperationEntry], int]:
        """|credit_amount| >= min_amount (및 < max_amount) 인 크레딧 조정 기록"""
        magnitude = func.abs(self.model_class.credit_amount)
        conditions = [
            self.model_class.operation_type == AdminOperationType.ADJUST_CREDITS.value,
            magnitude >= min_amount,
        ]
        if max_amount is not None:
            conditions.append(magnitude < max_amount)
        condition = and_(*conditions)

        total = self.db.execute(
            select(func.count(self.model_class.id)).where(condition)
        ).scalar_one()

        rows = self.db.execute(
            select(self.model_class)
            .where(condition)
            .order_by(desc(magnitude), desc(self.model_class.created_at))
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return self._to_schemas(rows), int(total or 0)
