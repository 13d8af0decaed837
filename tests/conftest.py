import os

# 설정 싱글톤이 로드되기 전에 테스트용 환경 변수 지정
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from dataclasses import dataclass

import pytest
from sqlalchemy import update

from creditapi.config import LedgerConfig, Settings
from creditapi.database.connection import build_engine, build_session_factory
from creditapi.database.session import session_scope
from creditapi.models import admin, credits  # noqa: F401
from creditapi.models.base import Base
from creditapi.models.credits import CreditBalance
from creditapi.schemas.admin import AdminIdentity
from creditapi.services.admin_credit_service import AdminCreditService
from creditapi.services.balance_query_service import BalanceQueryService
from creditapi.services.ledger_service import LedgerService
from creditapi.services.notifications import BalanceChangeNotifier
from creditapi.services.reconciliation_service import ReconciliationService


@dataclass
class LedgerStack:
    """실제 SQLite DB에 연결된 서비스 묶음"""

    config: LedgerConfig
    session_factory: object
    notifier: BalanceChangeNotifier
    ledger: LedgerService
    query: BalanceQueryService
    reconciliation: ReconciliationService
    admin: AdminCreditService


@pytest.fixture
def engine(tmp_path):
    db_path = tmp_path / "ledger.db"
    engine = build_engine(Settings(DATABASE_URL=f"sqlite:///{db_path}"))
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def make_stack(session_factory):
    def _make(**overrides) -> LedgerStack:
        config = LedgerConfig(**overrides)
        notifier = BalanceChangeNotifier()
        ledger = LedgerService(session_factory, config, notifier)
        return LedgerStack(
            config=config,
            session_factory=session_factory,
            notifier=notifier,
            ledger=ledger,
            query=BalanceQueryService(session_factory, config),
            reconciliation=ReconciliationService(session_factory, config),
            admin=AdminCreditService(session_factory, config, ledger),
        )

    return _make


@pytest.fixture
def stack(make_stack) -> LedgerStack:
    return make_stack()


@pytest.fixture
def admin_identity():
    return AdminIdentity(username="ops-admin", is_admin=True)


@pytest.fixture
def corrupt_balance(session_factory):
    """원장을 거치지 않고 잔액을 직접 변경 (대사 테스트용)"""

    def _corrupt(user_id: str, balance: int):
        with session_scope(session_factory) as db:
            db.execute(
                update(CreditBalance)
                .where(CreditBalance.user_id == user_id)
                .values(balance=balance)
            )

    return _corrupt
