"""
잔액 변경 알림

원장 처리기가 커밋 직후 이벤트를 발행합니다. 구독자 예외는 로그만 남기고 전파하지 않습니다.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List

from pydantic import BaseModel, ConfigDict

from creditapi.models.credits import TransactionKind

logger = logging.getLogger(__name__)


class BalanceChangedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    transaction_id: int
    amount: int
    kind: TransactionKind
    new_balance: int
    created_at: datetime


BalanceListener = Callable[[BalanceChangedEvent], None]


class BalanceChangeNotifier:
    """잔액 변경 구독/발행 허브 (프로세스 내)"""

    def __init__(self):
        self._listeners: List[BalanceListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: BalanceListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: BalanceListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: BalanceChangedEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Balance listener failed for user {event.user_id} "
                    f"(transaction {event.transaction_id}): {str(e)}"
                )
