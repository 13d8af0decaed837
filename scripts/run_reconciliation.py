"""
잔액 대사 배치 실행

cron / EventBridge 스케줄에서 호출합니다.
리포트를 JSON으로 출력하고 불일치나 실패가 있으면 종료 코드 1을 반환합니다.
"""

import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging

from creditapi.config import settings
from creditapi.database.connection import build_engine, build_session_factory
from creditapi.logging_config import init_logging
from creditapi.schemas.admin import BalanceAuditResponse
from creditapi.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


def exit_code_for(report: BalanceAuditResponse) -> int:
    if report.summary.imbalanced_users or report.summary.failed_users:
        return 1
    return 0


def run_reconciliation() -> int:
    engine = build_engine(settings)
    try:
        service = ReconciliationService(
            session_factory=build_session_factory(engine),
            config=settings.ledger_config(),
        )
        report = service.audit_all_balances()
    finally:
        engine.dispose()

    print(report.model_dump_json(indent=2))
    return exit_code_for(report)


if __name__ == "__main__":
    init_logging(settings.LOG_LEVEL)
    sys.exit(run_reconciliation())
