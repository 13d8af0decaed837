from .credits import ApplyResult, BalanceResponse, HistoryFilters, TransactionEntry
from .admin import AdminIdentity, CreditAdjustmentRequest, RequestMetadata
from .pagination import PaginationMeta
