"""Per-user coin balance.

Balances only change through ``adjust``, one optimistic transaction per call.
An adjustment carrying a request token is recorded in the transaction log
(``coinTransactions/{userId}/{token}``) and applied at most once:

1. open the log entry as ``pending`` (or find it already ``applied``)
2. update the balance; the token also enters a bounded window on the
   balance document, which settles a pending entry whose caller died
   between steps 2 and 3
3. mark the log entry ``applied``

A rejected debit removes its pending entry so the token can be used again.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from reward_engine.ledger import paths
from reward_engine.ledger.store import UNCHANGED, Document, LedgerStore
from reward_engine.middleware.prometheus import record_coin_adjustment
from reward_engine.models.records import CoinBalance, CoinTransaction, TransactionStatus
from reward_engine.utils.errors import InsufficientBalanceError, InvalidAmountError

logger = logging.getLogger(__name__)


def _to_decimal(value: Decimal | int | str) -> Decimal:
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidAmountError(value, "not a number") from e
    if not amount.is_finite():
        raise InvalidAmountError(amount, "not a finite number")
    return amount


class CoinLedger:
    """Atomic, never-negative coin balances."""

    def __init__(self, store: LedgerStore, token_window: int = 100) -> None:
        self.store = store
        self.token_window = token_window

    async def get_balance(self, user_id: str) -> Decimal:
        balance = CoinBalance.from_doc(await self.store.get(paths.balance(user_id)))
        return balance.amount if balance else Decimal("0")

    async def adjust(
        self,
        user_id: str,
        delta: Decimal | int | str,
        request_token: str | None = None,
        allow_negative: bool = False,
        reason: str = "adjust",
    ) -> Decimal:
        """Add ``delta`` to the balance and return the new amount.

        Args:
            user_id: Balance owner
            delta: Signed amount; negative values are debits
            request_token: Makes the adjustment idempotent and logs it
            allow_negative: Must be set for debits
            reason: Stored on the transaction log entry

        Raises:
            InvalidAmountError: zero delta, or a debit without allow_negative
            InsufficientBalanceError: the balance would go below zero
            TransactionFailedError: retries exhausted
        """
        delta = _to_decimal(delta)
        if delta == 0:
            raise InvalidAmountError(delta, "must not be zero")
        if delta < 0 and not allow_negative:
            raise InvalidAmountError(delta, "debits are not allowed here")

        credit = delta > 0
        updated_at = await self.store.server_timestamp()

        if request_token is not None:
            entry = await self._open_transaction(
                user_id, delta, reason, request_token, updated_at
            )
            if entry.status == TransactionStatus.APPLIED:
                record_coin_adjustment(credit, "replayed")
                logger.info(f"Replayed coin adjustment for {user_id} ({request_token})")
                return await self.get_balance(user_id)

        def txn(current: Document | None):
            balance = CoinBalance.from_doc(current) or CoinBalance()
            if request_token is not None and request_token in balance.recent_tokens:
                return UNCHANGED, (balance.amount, True)

            new_amount = balance.amount + delta
            if new_amount < 0:
                raise InsufficientBalanceError(balance.amount, delta)

            recent = balance.recent_tokens
            if request_token is not None:
                recent = (recent + [request_token])[-self.token_window:]
            updated = CoinBalance(
                amount=new_amount, recent_tokens=recent, updated_at=updated_at
            )
            return updated.to_doc(), (new_amount, False)

        try:
            amount, replayed = await self.store.run_transaction(
                paths.balance(user_id), txn
            )
        except InsufficientBalanceError:
            if request_token is not None:
                await self.store.delete(paths.coin_transaction(user_id, request_token))
            record_coin_adjustment(credit, "rejected")
            logger.info(f"Insufficient balance for {user_id}: delta {delta}")
            raise

        if request_token is not None:
            await self._close_transaction(user_id, request_token, amount)

        if replayed:
            record_coin_adjustment(credit, "replayed")
            logger.info(f"Replayed coin adjustment for {user_id} ({request_token})")
        else:
            record_coin_adjustment(credit, "applied")
            logger.info(f"Coin balance of {user_id} adjusted by {delta} -> {amount}")
        return amount

    async def history(self, user_id: str, limit: int = 100) -> list[CoinTransaction]:
        """Applied adjustments of a user, newest first."""
        docs = await self.store.scan(paths.coin_transactions_prefix(user_id))
        entries = [CoinTransaction.from_doc(doc) for _, doc in docs]
        applied = [e for e in entries if e.status == TransactionStatus.APPLIED]
        applied.sort(key=lambda e: (e.created_at is not None, e.created_at), reverse=True)
        return applied[:limit]

    async def _open_transaction(
        self,
        user_id: str,
        delta: Decimal,
        reason: str,
        request_token: str,
        created_at: datetime,
    ) -> CoinTransaction:
        def txn(current: Document | None):
            if current is not None:
                return UNCHANGED, CoinTransaction.from_doc(current)
            entry = CoinTransaction(
                user_id=user_id,
                amount=delta,
                reason=reason,
                request_token=request_token,
                created_at=created_at,
            )
            return entry.to_doc(), entry

        return await self.store.run_transaction(
            paths.coin_transaction(user_id, request_token), txn
        )

    async def _close_transaction(
        self, user_id: str, request_token: str, balance_after: Decimal
    ) -> None:
        def txn(current: Document | None):
            entry = CoinTransaction.from_doc(current)
            if entry is None or entry.status == TransactionStatus.APPLIED:
                return UNCHANGED, None
            applied = entry.model_copy(
                update={"status": TransactionStatus.APPLIED, "balance_after": balance_after}
            )
            return applied.to_doc(), None

        await self.store.run_transaction(
            paths.coin_transaction(user_id, request_token), txn
        )
