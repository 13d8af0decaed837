from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from creditapi.models.admin import AdminOperationType
from creditapi.schemas.credits import MAX_DESCRIPTION_LENGTH
from creditapi.schemas.pagination import PaginationMeta


class AdjustmentDirection(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AdminIdentity(BaseModel):
    """인증 계층이 확인한 관리자 신원"""

    username: str
    is_admin: bool = False


class RequestMetadata(BaseModel):
    """감사 기록용 요청 메타데이터"""

    ip_address: str = "unknown"
    user_agent: str = "unknown"


class CreditAdjustmentRequest(BaseModel):
    """관리자 크레딧 조정 요청"""

    user_id: str = Field(..., min_length=1, max_length=64, description="대상 사용자 ID")
    amount: int = Field(..., gt=0, description="조정할 크레딧 (양수)")
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    direction: AdjustmentDirection
    target_user_contact: Optional[str] = Field(
        None, max_length=255, description="감사 가독성용 대상 사용자 이메일/전화"
    )


class CreditAdjustmentResponse(BaseModel):
    transaction_id: int
    new_balance: int
    before_balance: int
    audit_recorded: bool = True
    warnings: List[str] = Field(default_factory=list)


class AdminOperationEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_identity: str
    operation_type: AdminOperationType
    target_user_id: Optional[str] = None
    target_user_contact: Optional[str] = None
    credit_amount: int
    before_balance: int
    after_balance: int
    description: str
    ip_address: str
    user_agent: str
    created_at: datetime


class OperationLogFilters(BaseModel):
    page: int = 1
    limit: Optional[int] = None
    admin_identity: Optional[str] = None
    operation_type: Optional[AdminOperationType] = None
    target_user_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_order: Literal["asc", "desc"] = "desc"


class OperationLogResponse(BaseModel):
    logs: List[AdminOperationEntry]
    pagination: PaginationMeta


class LargeOperationAlert(AdminOperationEntry):
    risk_level: RiskLevel


class AlertListResponse(BaseModel):
    alerts: List[LargeOperationAlert]
    pagination: PaginationMeta


class BalanceAuditResult(BaseModel):
    """사용자별 잔액 대사 결과"""

    user_id: str
    calculated_balance: int
    actual_balance: int
    difference: int = Field(..., description="actual - calculated")
    is_balanced: bool
    transaction_count: int
    last_transaction_at: Optional[datetime] = None
    first_broken_transaction_id: Optional[int] = None


class BalanceAuditFailure(BaseModel):
    user_id: str
    error: str


class BalanceAuditSummary(BaseModel):
    total_users: int
    balanced_users: int
    imbalanced_users: int
    failed_users: int
    total_difference: int
    audited_at: datetime


class BalanceAuditResponse(BaseModel):
    results: List[BalanceAuditResult]
    failures: List[BalanceAuditFailure]
    summary: BalanceAuditSummary
