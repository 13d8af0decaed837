from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from creditapi.models.base import BaseModel, BigIntegerPK


class AdminOperationType(str, Enum):
    CREATE_MEMBER = "create_member"
    ADJUST_CREDITS = "adjust_credits"
    LOGIN = "login"
    LOGOUT = "logout"


class AdminOperationRecord(BaseModel):
    """
    관리자 작업 감사 기록

    누가, 어떤 사용자에게, 어떤 잔액 변경을 했는지 추가 전용으로 기록합니다.
    원장 거래와는 별도의 테이블입니다.
    """

    __tablename__ = "admin_operation_records"
    __table_args__ = (
        Index("ix_admin_operation_records_admin_created", "admin_identity", "created_at"),
        Index("ix_admin_operation_records_target", "target_user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    admin_identity: Mapped[str] = mapped_column(String(128), nullable=False)
    operation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    target_user_contact: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="감사 가독성용 대상 사용자 연락처 (이메일/전화)"
    )
    credit_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    before_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    after_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    user_agent: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
