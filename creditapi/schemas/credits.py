from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from creditapi.models.credits import TransactionKind
from creditapi.schemas.pagination import PaginationMeta

MAX_DESCRIPTION_LENGTH = 500


class BalanceResponse(BaseModel):
    """크레딧 잔액 응답"""

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., description="사용자 ID")
    balance: int = Field(..., description="현재 크레딧 잔액")
    updated_at: Optional[datetime] = Field(None, description="마지막 변경 시각")


class TransactionEntry(BaseModel):
    """크레딧 원장 항목"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    amount: int = Field(..., description="변동량 (차감은 음수)")
    kind: TransactionKind
    description: str
    balance_after: int = Field(..., description="거래 직후 잔액")
    idempotency_key: Optional[str] = None
    created_at: datetime


class HistoryFilters(BaseModel):
    """거래 내역 조회 필터"""

    page: int = Field(1, description="페이지 번호 (1부터)")
    limit: Optional[int] = Field(None, description="페이지 크기 (최대값으로 제한)")
    kind: Optional[TransactionKind] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class HistoryResponse(BaseModel):
    """거래 내역 조회 응답"""

    transactions: List[TransactionEntry]
    pagination: PaginationMeta


class ApplyResult(BaseModel):
    """원장 처리 성공 결과 - 실패는 항상 예외로 전달됨"""

    model_config = ConfigDict(frozen=True)

    transaction_id: int
    new_balance: int
    replayed: bool = Field(False, description="멱등키로 기존 결과를 재사용했는지 여부")


class DeductionRequest(BaseModel):
    """콘텐츠 생성 등 계량 기능의 크레딧 차감 요청"""

    amount: int = Field(..., gt=0, description="차감할 크레딧 (양수)")
    description: str = Field(
        ..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH, description="차감 사유"
    )


class CreditValidation(BaseModel):
    """잔액 충분 여부 확인 결과 (UI 안내용, 강제 수단 아님)"""

    has_sufficient_credits: bool
    required_credits: int
    current_balance: int
    deficit: int


class UsageRateResponse(BaseModel):
    user_id: str
    days: int
    usage_rate: float = Field(..., description="일 평균 차감량")


class CreditSummaryResponse(BaseModel):
    user_id: str
    current_balance: int
    total_earned: int
    total_spent: int
    transaction_count: int
    usage_rate: float
    status: Literal["low", "medium", "high"]
    low_balance_warning: Optional[str] = None


class BalancePoint(BaseModel):
    at: datetime
    balance: int
