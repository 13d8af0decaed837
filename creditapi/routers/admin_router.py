"""
Admin Router

관리자 전용 크레딧 API
- 사용자 잔액/거래 내역 조회
- 수동 크레딧 조정 (감사 기록 포함)
- 잔액 대사 및 감사 기록 조회
"""

import logging
from datetime import datetime
from typing import Literal, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query

from creditapi.containers import Container
from creditapi.core.auth_middleware import get_request_metadata, require_admin
from creditapi.models.admin import AdminOperationType
from creditapi.models.credits import TransactionKind
from creditapi.schemas.admin import (
    AdminIdentity,
    AlertListResponse,
    BalanceAuditResponse,
    BalanceAuditResult,
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    OperationLogFilters,
    OperationLogResponse,
    RequestMetadata,
    RiskLevel,
)
from creditapi.schemas.credits import BalanceResponse, HistoryFilters, HistoryResponse
from creditapi.services.admin_credit_service import AdminCreditService
from creditapi.services.balance_query_service import BalanceQueryService
from creditapi.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/credits/balance/{user_id}", response_model=BalanceResponse)
@inject
async def get_user_balance(
    user_id: str = Path(..., min_length=1, max_length=64, description="사용자 ID"),
    admin: AdminIdentity = Depends(require_admin),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> BalanceResponse:
    return query_service.get_balance(user_id)


@router.get("/credits/history/{user_id}", response_model=HistoryResponse)
@inject
async def get_user_history(
    user_id: str = Path(..., min_length=1, max_length=64, description="사용자 ID"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    kind: Optional[TransactionKind] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    admin: AdminIdentity = Depends(require_admin),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> HistoryResponse:
    filters = HistoryFilters(
        page=page, limit=limit, kind=kind, start_date=start_date, end_date=end_date
    )
    return query_service.get_history(user_id, filters)


@router.post("/credits/adjust", response_model=CreditAdjustmentResponse)
@inject
async def adjust_user_credits(
    request: CreditAdjustmentRequest,
    admin: AdminIdentity = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
    admin_service: AdminCreditService = Depends(
        Provide[Container.services.admin_credit_service]
    ),
) -> CreditAdjustmentResponse:
    """
    관리자 크레딧 조정

    원장 반영 후 감사 기록을 남깁니다. 감사 기록이 실패해도 조정은 유지되며
    audit_recorded=false와 warnings로 보고됩니다.
    """
    return admin_service.adjust_credits(
        admin=admin,
        user_id=request.user_id,
        amount=request.amount,
        description=request.description,
        direction=request.direction,
        metadata=metadata,
        target_user_contact=request.target_user_contact,
    )


@router.get("/audit/balance-check", response_model=BalanceAuditResponse)
@inject
async def check_all_balances(
    admin: AdminIdentity = Depends(require_admin),
    reconciliation_service: ReconciliationService = Depends(
        Provide[Container.services.reconciliation_service]
    ),
) -> BalanceAuditResponse:
    """전체 잔액 대사 - 불일치 큰 순서"""
    logger.info(f"Balance audit requested by admin {admin.username}")
    return reconciliation_service.audit_all_balances()


@router.get("/audit/balance-check/{user_id}", response_model=BalanceAuditResult)
@inject
async def check_user_balance(
    user_id: str = Path(..., min_length=1, max_length=64),
    admin: AdminIdentity = Depends(require_admin),
    reconciliation_service: ReconciliationService = Depends(
        Provide[Container.services.reconciliation_service]
    ),
) -> BalanceAuditResult:
    return reconciliation_service.audit_user(user_id)


@router.get("/audit/logs", response_model=OperationLogResponse)
@inject
async def get_operation_logs(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    admin_username: Optional[str] = Query(None, description="관리자 필터"),
    operation_type: Optional[AdminOperationType] = Query(None),
    target_user_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    admin: AdminIdentity = Depends(require_admin),
    admin_service: AdminCreditService = Depends(
        Provide[Container.services.admin_credit_service]
    ),
) -> OperationLogResponse:
    filters = OperationLogFilters(
        page=page,
        limit=limit,
        admin_identity=admin_username,
        operation_type=operation_type,
        target_user_id=target_user_id,
        start_date=start_date,
        end_date=end_date,
        sort_order=sort_order,
    )
    return admin_service.list_operation_logs(filters)


@router.get("/audit/alerts", response_model=AlertListResponse)
@inject
async def get_large_operation_alerts(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    risk_level: Optional[RiskLevel] = Query(None),
    admin: AdminIdentity = Depends(require_admin),
    admin_service: AdminCreditService = Depends(
        Provide[Container.services.admin_credit_service]
    ),
) -> AlertListResponse:
    """대량 크레딧 조정 알림"""
    return admin_service.list_large_operation_alerts(
        page=page, limit=limit, risk_level=risk_level
    )
