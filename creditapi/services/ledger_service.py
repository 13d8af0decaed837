"""
원장 처리 서비스 - 모든 잔액 변경의 단일 진입점

apply()는 잔액 갱신과 거래 기록을 하나의 DB 트랜잭션으로 처리합니다.
- 조건부 UPDATE 한 번으로 잔액 음수 방지와 사용자별 직렬화를 함께 보장
- 거래 시각은 행 잠금을 얻은 뒤 DB 시계로 기록 (커밋 순서와 시간 순서 일치)
- 멱등키가 같은 재시도는 기존 결과를 그대로 반환 (금액/유형이 다르면 409)
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from creditapi.config import LedgerConfig
from creditapi.core.exceptions import (
    IdempotencyConflictError,
    InsufficientCreditsError,
    InvalidAmountError,
    LedgerValidationError,
    StorageError,
    UserNotFoundError,
)
from creditapi.database.session import read_session
from creditapi.models.credits import TransactionKind
from creditapi.repositories.balance_repository import BalanceRepository
from creditapi.repositories.transaction_repository import TransactionRepository
from creditapi.schemas.credits import (
    MAX_DESCRIPTION_LENGTH,
    ApplyResult,
    BalanceResponse,
    CreditValidation,
    TransactionEntry,
)
from creditapi.services.notifications import BalanceChangedEvent, BalanceChangeNotifier

logger = logging.getLogger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


def require_positive_amount(amount) -> int:
    """양의 정수 금액인지 확인 (bool 제외)"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(
            "Credit amount must be an integer", details={"amount": str(amount)}
        )
    if amount <= 0:
        raise InvalidAmountError(
            "Credit amount must be greater than zero", details={"amount": amount}
        )
    return amount


class LedgerService:
    """크레딧 원장 처리기"""

    def __init__(
        self,
        session_factory: sessionmaker,
        config: LedgerConfig,
        notifier: Optional[BalanceChangeNotifier] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.notifier = notifier

    # ----------------------------------------------------------------
    # 핵심 처리
    # ----------------------------------------------------------------

    def apply(
        self,
        user_id: str,
        amount: int,
        kind: Union[TransactionKind, str],
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> ApplyResult:
        """잔액 변경을 원자적으로 적용하고 원장에 기록

        Args:
            user_id: 사용자 ID
            amount: 변동량 (차감은 음수, 그 외는 양수)
            kind: 거래 유형
            description: 사용자에게 표시되는 사유
            idempotency_key: 재시도 중복 방지 키 (선택)

        Returns:
            ApplyResult: 거래 ID와 새 잔액

        Raises:
            InvalidAmountError, LedgerValidationError: 입력 검증 실패 (저장소 접근 전)
            UserNotFoundError: 잔액 행이 없음
            InsufficientCreditsError: 차감 후 잔액이 음수가 됨
            IdempotencyConflictError: 같은 멱등키가 다른 금액/유형으로 사용됨
            StorageError: 재시도 후에도 저장소 오류
        """
        kind, description = self._validate(
            user_id, amount, kind, description, idempotency_key
        )

        last_error: Optional[Exception] = None
        for attempt in range(1, self.config.apply_max_attempts + 1):
            try:
                result, event = self._apply_once(
                    user_id, amount, kind, description, idempotency_key
                )
            except (OperationalError, DBAPIError) as e:
                last_error = e
                logger.warning(
                    f"Ledger storage error for user {user_id} "
                    f"(attempt {attempt}/{self.config.apply_max_attempts}): {str(e)}"
                )
                continue

            if event is not None:
                logger.info(
                    f"Applied {kind.value} {amount} for user {user_id}: "
                    f"transaction {result.transaction_id}, balance {result.new_balance}"
                )
                self._publish(event)
            else:
                logger.info(
                    f"Replayed transaction {result.transaction_id} for user {user_id} "
                    f"(idempotency key {idempotency_key})"
                )
            return result

        logger.error(
            f"Ledger apply failed for user {user_id} after "
            f"{self.config.apply_max_attempts} attempts: {str(last_error)}"
        )
        raise StorageError(
            "Credit store unavailable, re-query the balance before retrying",
            details={"user_id": user_id},
        )

    def _apply_once(
        self,
        user_id: str,
        amount: int,
        kind: TransactionKind,
        description: str,
        idempotency_key: Optional[str],
    ) -> Tuple[ApplyResult, Optional[BalanceChangedEvent]]:
        db = self.session_factory()
        try:
            balance_repo = BalanceRepository(db)
            transaction_repo = TransactionRepository(db)

            if idempotency_key:
                existing = transaction_repo.find_by_idempotency_key(user_id, idempotency_key)
                if existing is not None:
                    db.rollback()
                    return self._replay_result(existing, amount, kind), None

            # UPDATE가 트랜잭션의 첫 쓰기 문장이어야 잠금 대기가 올바르게 동작함
            if not balance_repo.apply_delta(user_id, amount, datetime.now(timezone.utc)):
                current_balance = balance_repo.get_balance_value(user_id)
                db.rollback()
                if current_balance is None:
                    raise UserNotFoundError(user_id)
                logger.info(
                    f"Insufficient credits for user {user_id}: "
                    f"balance {current_balance}, required {-amount}"
                )
                raise InsufficientCreditsError(
                    current_balance=current_balance, required=-amount
                )

            new_balance = balance_repo.get_balance_value(user_id)
            created_at = balance_repo.current_timestamp()

            try:
                entry = transaction_repo.append(
                    user_id=user_id,
                    amount=amount,
                    kind=kind,
                    description=description,
                    balance_after=new_balance,
                    created_at=created_at,
                    idempotency_key=idempotency_key,
                )
                db.commit()
            except IntegrityError:
                # 같은 멱등키의 동시 요청이 먼저 커밋됨 - 이쪽 변경은 되돌리고 승자 결과 반환
                db.rollback()
                winner = (
                    transaction_repo.find_by_idempotency_key(user_id, idempotency_key)
                    if idempotency_key
                    else None
                )
                if winner is None:
                    raise
                db.rollback()
                return self._replay_result(winner, amount, kind), None

            result = ApplyResult(transaction_id=entry.id, new_balance=new_balance)
            event = BalanceChangedEvent(
                user_id=user_id,
                transaction_id=entry.id,
                amount=amount,
                kind=kind,
                new_balance=new_balance,
                created_at=created_at,
            )
            return result, event
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _replay_result(
        existing: TransactionEntry, amount: int, kind: TransactionKind
    ) -> ApplyResult:
        """저장된 결과 재사용 - 금액/유형이 다르면 다른 요청의 키 재사용"""
        if existing.amount != amount or existing.kind != kind:
            raise IdempotencyConflictError(
                existing.idempotency_key,
                details={
                    "transaction_id": existing.id,
                    "stored_amount": existing.amount,
                    "stored_kind": existing.kind.value,
                },
            )
        return ApplyResult(
            transaction_id=existing.id, new_balance=existing.balance_after, replayed=True
        )

    def _publish(self, event: BalanceChangedEvent) -> None:
        if self.notifier is None:
            return
        self.notifier.publish(event)

    def _validate(
        self,
        user_id: str,
        amount: int,
        kind: Union[TransactionKind, str],
        description: str,
        idempotency_key: Optional[str],
    ) -> Tuple[TransactionKind, str]:
        if not isinstance(user_id, str) or not user_id.strip():
            raise LedgerValidationError("user_id is required")

        try:
            kind = TransactionKind(kind)
        except ValueError:
            raise LedgerValidationError(
                f"Unknown transaction kind: {kind}",
                details={"allowed": [k.value for k in TransactionKind]},
            )

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError(
                "Credit amount must be an integer", details={"amount": str(amount)}
            )
        if amount == 0:
            raise InvalidAmountError("Credit amount must not be zero", details={"amount": 0})
        if abs(amount) > self.config.max_single_operation_amount:
            raise InvalidAmountError(
                f"Credit amount exceeds the single operation limit of "
                f"{self.config.max_single_operation_amount}",
                details={
                    "amount": amount,
                    "max": self.config.max_single_operation_amount,
                },
            )
        if kind.is_debit and amount > 0:
            raise InvalidAmountError(
                "Deduction amount must be negative", details={"amount": amount}
            )
        if not kind.is_debit and amount < 0:
            raise InvalidAmountError(
                f"{kind.value} amount must be positive", details={"amount": amount}
            )

        if not isinstance(description, str) or not description.strip():
            raise LedgerValidationError("Description is required")
        description = description.strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise LedgerValidationError(
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                details={"length": len(description)},
            )

        if idempotency_key is not None and (
            not idempotency_key or len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH
        ):
            raise LedgerValidationError(
                f"Idempotency key must be 1..{MAX_IDEMPOTENCY_KEY_LENGTH} characters"
            )

        return kind, description

    # ----------------------------------------------------------------
    # 편의 메서드 (모두 apply 경유)
    # ----------------------------------------------------------------

    def deduct(
        self,
        user_id: str,
        amount: int,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> ApplyResult:
        """양수 금액을 받아 차감 처리"""
        amount = require_positive_amount(amount)
        return self.apply(
            user_id, -amount, TransactionKind.DEDUCTION, description, idempotency_key
        )

    def grant(
        self,
        user_id: str,
        amount: int,
        kind: Union[TransactionKind, str],
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> ApplyResult:
        """보너스/환불/충전 지급"""
        amount = require_positive_amount(amount)
        if kind == TransactionKind.DEDUCTION:
            raise LedgerValidationError("Use deduct() for deductions")
        return self.apply(user_id, amount, kind, description, idempotency_key)

    def open_account(self, user_id: str) -> BalanceResponse:
        """가입 시 잔액 행 생성 (가입 보너스, 거래 기록 없음)

        이미 존재하면 기존 잔액을 그대로 반환합니다.
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise LedgerValidationError("user_id is required")

        db = self.session_factory()
        try:
            repo = BalanceRepository(db)
            existing = repo.get(user_id)
            if existing is not None:
                return existing

            created = repo.create(
                user_id=user_id,
                initial_balance=self.config.registration_bonus,
                now=datetime.now(timezone.utc),
            )
            db.commit()
            logger.info(
                f"Opened credit account for user {user_id} with {created.balance} credits"
            )
            return created
        except IntegrityError:
            # 동시 가입 요청 - 먼저 생성된 행을 반환
            db.rollback()
            existing = BalanceRepository(db).get(user_id)
            if existing is None:
                raise
            return existing
        except (OperationalError, DBAPIError) as e:
            db.rollback()
            logger.error(f"Failed to open credit account for user {user_id}: {str(e)}")
            raise StorageError(details={"user_id": user_id})
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def check_sufficient(self, user_id: str, amount: int) -> CreditValidation:
        """차감 전 잔액 충분 여부 확인 (UI 안내용)"""
        amount = require_positive_amount(amount)
        with read_session(self.session_factory) as db:
            current_balance = BalanceRepository(db).get_balance_value(user_id)
        if current_balance is None:
            raise UserNotFoundError(user_id)
        return CreditValidation(
            has_sufficient_credits=current_balance >= amount,
            required_credits=amount,
            current_balance=current_balance,
            deficit=max(0, amount - current_balance),
        )
