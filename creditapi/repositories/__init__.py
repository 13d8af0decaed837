# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .balance_repository import BalanceRepository
from .transaction_repository import TransactionRepository
from .admin_operation_repository import AdminOperationRepository

__all__ = [
    "BaseRepository",
    "BalanceRepository",
    "TransactionRepository",
    "AdminOperationRepository",
]
