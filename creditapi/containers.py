from dependency_injector import containers, providers

from creditapi.config import Settings, get_settings
from creditapi.database.connection import build_engine, build_session_factory
from creditapi.services.admin_credit_service import AdminCreditService
from creditapi.services.balance_query_service import BalanceQueryService
from creditapi.services.ledger_service import LedgerService
from creditapi.services.notifications import BalanceChangeNotifier
from creditapi.services.reconciliation_service import ReconciliationService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(get_settings)
    ledger_config = providers.Singleton(Settings.ledger_config, config)


class DatabaseModule(containers.DeclarativeContainer):
    """Engine and session factory shared by all services."""

    config = providers.DependenciesContainer()

    engine = providers.Singleton(build_engine, settings=config.config)
    session_factory = providers.Singleton(build_session_factory, engine=engine)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies."""

    config = providers.DependenciesContainer()
    database = providers.DependenciesContainer()

    notifier = providers.Singleton(BalanceChangeNotifier)

    ledger_service = providers.Factory(
        LedgerService,
        session_factory=database.session_factory,
        config=config.ledger_config,
        notifier=notifier,
    )
    balance_query_service = providers.Factory(
        BalanceQueryService,
        session_factory=database.session_factory,
        config=config.ledger_config,
    )
    reconciliation_service = providers.Factory(
        ReconciliationService,
        session_factory=database.session_factory,
        config=config.ledger_config,
    )
    admin_credit_service = providers.Factory(
        AdminCreditService,
        session_factory=database.session_factory,
        config=config.ledger_config,
        ledger_service=ledger_service,
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "creditapi.routers.credit_router",
            "creditapi.routers.admin_router",
        ],
    )

    config = providers.Container(ConfigModule)
    database = providers.Container(DatabaseModule, config=config)
    services = providers.Container(
        ServiceModule, config=config, database=database
    )
