"""
크레딧 원장 데이터 모델

- credit_balances: 사용자별 현재 잔액 (사용자당 1행, 원장 처리기만 갱신)
- credit_transactions: 잔액 변동 이벤트 원장 (추가 전용, 수정/삭제 없음)
"""

from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.schema import UniqueConstraint

from creditapi.models.base import BaseModel, BigIntegerPK, TimestampMixin


class TransactionKind(str, Enum):
    """거래 유형"""

    DEDUCTION = "deduction"
    BONUS = "bonus"
    REFUND = "refund"
    RECHARGE = "recharge"

    @property
    def is_debit(self) -> bool:
        return self is TransactionKind.DEDUCTION


class CreditBalance(BaseModel, TimestampMixin):
    """
    잔액 테이블 - 사용자당 한 행

    잔액은 항상 0 이상이어야 하며, 가입 시 가입 보너스로 생성됩니다.
    """

    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_credit_balances_non_negative"),)

    # 외부 인증 시스템이 발급한 사용자 식별자 (원장은 ID만 보관)
    user_id = Column(String(64), primary_key=True)

    balance = Column(BigInteger, nullable=False)


class CreditTransaction(BaseModel):
    """
    크레딧 거래 원장 - 모든 잔액 변동 이벤트를 저장

    1. 불변성(Immutable): 한번 생성된 레코드는 수정되지 않음
    2. 완전성(Complete): 모든 잔액 변동사항이 기록됨
    3. 멱등성(Idempotent): (user_id, idempotency_key)로 재시도 시 중복 차감 방지
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_credit_transactions_idempotency"),
        CheckConstraint("amount <> 0", name="ck_credit_transactions_non_zero"),
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)

    user_id = Column(
        String(64), ForeignKey("credit_balances.user_id"), nullable=False
    )

    # 변동량 - 차감은 음수, 보너스/환불/충전은 양수
    amount = Column(BigInteger, nullable=False)

    kind = Column(String(16), nullable=False)

    description = Column(Text, nullable=False)

    # 거래 직후 잔액 - 이력 표시 및 재생 검증용
    balance_after = Column(BigInteger, nullable=False)

    idempotency_key = Column(String(128), nullable=True)

    # 행 잠금을 획득한 뒤 처리기가 설정 (커밋 순서와 일치)
    created_at = Column(DateTime(timezone=True), nullable=False)
