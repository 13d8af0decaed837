"""
크레딧 API 라우터 (사용자용)

- GET /credits/balance: 내 크레딧 잔액
- GET /credits/history: 내 거래 내역 (유형/기간 필터, 페이지네이션)
- GET /credits/usage-rate: 일 평균 사용량
- GET /credits/summary: 잔액 요약
- GET /credits/export: 거래 내역 내보내기 (csv/json)
- GET /credits/deduct: 차감 전 잔액 충분 여부 확인 (충전 안내용)
- POST /credits/deduct: 계량 기능 사용 시 크레딧 차감 (Idempotency-Key 지원)

모든 엔드포인트는 Bearer 토큰 인증이 필요합니다.
"""

import logging
from datetime import datetime
from typing import Literal, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import Response

from creditapi.containers import Container
from creditapi.core.auth_middleware import get_current_user_id
from creditapi.models.credits import TransactionKind
from creditapi.schemas.credits import (
    ApplyResult,
    BalanceResponse,
    CreditSummaryResponse,
    CreditValidation,
    DeductionRequest,
    HistoryFilters,
    HistoryResponse,
    UsageRateResponse,
)
from creditapi.services.balance_query_service import BalanceQueryService
from creditapi.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance", response_model=BalanceResponse)
@inject
async def get_my_balance(
    user_id: str = Depends(get_current_user_id),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> BalanceResponse:
    """
    내 크레딧 잔액 조회

    HTTP Status:
        200: 성공
        401: 인증 실패
        404: 잔액 행 없음
    """
    return query_service.get_balance(user_id)


@router.get("/history", response_model=HistoryResponse)
@inject
async def get_my_history(
    page: int = Query(1, ge=1, description="페이지 번호"),
    limit: Optional[int] = Query(None, ge=1, description="페이지 크기 (최대 100으로 제한)"),
    kind: Optional[TransactionKind] = Query(None, description="거래 유형 필터"),
    start_date: Optional[datetime] = Query(None, description="시작 시각"),
    end_date: Optional[datetime] = Query(None, description="종료 시각"),
    user_id: str = Depends(get_current_user_id),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> HistoryResponse:
    """내 거래 내역 조회 - 최신순"""
    filters = HistoryFilters(
        page=page, limit=limit, kind=kind, start_date=start_date, end_date=end_date
    )
    return query_service.get_history(user_id, filters)


@router.get("/usage-rate", response_model=UsageRateResponse)
@inject
async def get_my_usage_rate(
    days: Optional[int] = Query(None, ge=1, le=365, description="집계 기간 (일)"),
    user_id: str = Depends(get_current_user_id),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> UsageRateResponse:
    return query_service.get_usage_rate(user_id, days)


@router.get("/summary", response_model=CreditSummaryResponse)
@inject
async def get_my_summary(
    user_id: str = Depends(get_current_user_id),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> CreditSummaryResponse:
    return query_service.get_summary(user_id)


@router.get("/export")
@inject
async def export_my_history(
    format: Literal["csv", "json"] = Query("csv", description="내보내기 형식"),
    user_id: str = Depends(get_current_user_id),
    query_service: BalanceQueryService = Depends(
        Provide[Container.services.balance_query_service]
    ),
) -> Response:
    """거래 내역 파일 다운로드"""
    content = query_service.export_history(user_id, fmt=format)
    media_type = "text/csv" if format == "csv" else "application/json"
    filename = f"credit-history-{datetime.now().strftime('%Y%m%d')}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/deduct", response_model=CreditValidation)
@inject
async def check_credits(
    amount: int = Query(..., gt=0, description="필요한 크레딧"),
    user_id: str = Depends(get_current_user_id),
    ledger_service: LedgerService = Depends(Provide[Container.services.ledger_service]),
) -> CreditValidation:
    """
    차감 전 잔액 확인 - 잔액을 바꾸지 않음

    부족하면 has_sufficient_credits=false와 deficit을 반환하므로
    클라이언트가 충전 안내를 띄울 수 있습니다. 실제 차감 시 잔액은 다시 검사됩니다.
    """
    return ledger_service.check_sufficient(user_id, amount)


@router.post("/deduct", response_model=ApplyResult)
@inject
async def deduct_credits(
    request: DeductionRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=128),
    user_id: str = Depends(get_current_user_id),
    ledger_service: LedgerService = Depends(Provide[Container.services.ledger_service]),
) -> ApplyResult:
    """
    크레딧 차감 - 콘텐츠 생성 등 계량 기능 호출 전/후

    같은 Idempotency-Key로 재시도하면 중복 차감 없이 기존 결과를 반환합니다.

    HTTP Status:
        200: 차감 성공 (또는 재시도 재사용)
        402: 잔액 부족 (details에 current_balance, required, deficit)
        404: 잔액 행 없음
        409: 같은 Idempotency-Key가 다른 금액으로 사용됨
        422: 금액/사유 검증 실패
        503: 저장소 오류 (잔액 재조회 후 재시도)
    """
    return ledger_service.deduct(
        user_id=user_id,
        amount=request.amount,
        description=request.description,
        idempotency_key=idempotency_key,
    )
