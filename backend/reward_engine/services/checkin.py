"""Check-in service.

Orchestrates a claim across the records it touches: the day (or complete
reward) record, the reward's code pool and the user's coin balance. Each
claim runs as a ClaimSaga so that a failed reward step rolls the check-in
back and the user can try again.
"""

import logging
from collections.abc import Callable
from decimal import Decimal

from reward_engine.ledger import paths
from reward_engine.ledger.mirror import LedgerMirror
from reward_engine.ledger.store import UNCHANGED, Document, LedgerStore
from reward_engine.middleware.prometheus import record_claim
from reward_engine.models.game import (
    COMPLETE_SLOT,
    DayReward,
    GameConfig,
    coupon_slot,
    day_slot,
)
from reward_engine.models.records import (
    CheckinRecord,
    ClaimRecord,
    CodePool,
    CompleteRewardRecord,
    RewardKind,
)
from reward_engine.schemas.checkin import (
    CheckinEntry,
    CheckinStatus,
    ClaimResult,
    CoinTransactionResponse,
    CouponResult,
    DayStatus,
)
from reward_engine.services.claim_protocol import ClaimProtocol, ClaimReceipt, ClaimSaga
from reward_engine.services.clock import TrustedClock
from reward_engine.services.code_cursor import CodeCursor
from reward_engine.services.coin_ledger import CoinLedger
from reward_engine.services.games import GameCatalog
from reward_engine.services.progression import DayProgression, evaluate_progression
from reward_engine.utils.errors import (
    AlreadyClaimedError,
    ClaimError,
    DayNotClaimableError,
    InsufficientBalanceError,
    InvalidRewardError,
    LostRaceError,
)

logger = logging.getLogger(__name__)


def _is_checked(doc: Document | None) -> bool:
    return doc is not None and bool(doc.get("checked"))


def _is_claimed(doc: Document | None) -> bool:
    return doc is not None and bool(doc.get("claimed"))


def _reward_token(path: str) -> str:
    """Coin token of a record's reward: one credit per record, ever."""
    return f"reward:{path}"


def _reward_reason(slot_id: str) -> str:
    return "complete_reward" if slot_id == COMPLETE_SLOT else "checkin_reward"


class CheckinService:
    """Daily check-in, complete reward, coupons and coins."""

    def __init__(
        self,
        store: LedgerStore,
        clock: TrustedClock,
        mirror: LedgerMirror | None = None,
        token_window: int = 100,
    ) -> None:
        self.store = store
        self.clock = clock
        self.mirror = mirror
        self.protocol = ClaimProtocol(store, mirror)
        self.progression = DayProgression(store)
        self.codes = CodeCursor(store)
        self.coins = CoinLedger(store, token_window=token_window)
        self.games = GameCatalog(store)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_claimable_day(self, game_id: str, user_id: str) -> int | None:
        """Index of the day the user may claim now, if any."""
        game = await self.games.get(game_id)
        today = await self.clock.verified_today()
        return await self.progression.next_claimable_day(
            game_id, user_id, game.total_days, today, game.end_date
        )

    async def get_status(self, game_id: str, user_id: str) -> CheckinStatus:
        game = await self.games.get(game_id)
        today = await self.clock.today()
        records = await self.progression.load_records(game_id, user_id, game.total_days)
        progression = evaluate_progression(records, game.total_days, today, game.end_date)
        complete = CompleteRewardRecord.from_doc(
            await self.store.get(paths.complete_reward(game_id, user_id))
        )

        days = []
        for i, (reward, record) in enumerate(zip(game.rewards, records)):
            checked = record is not None and record.checked
            days.append(
                DayStatus(
                    day_index=i,
                    checked=checked,
                    date=record.date if checked else None,
                    reward_kind=reward.kind,
                    amount=reward.amount,
                    code=record.code if checked else None,
                )
            )

        complete_claimed = complete is not None and complete.claimed
        return CheckinStatus(
            game_id=game_id,
            user_id=user_id,
            today=today,
            days=days,
            next_claimable_day=progression.next_day,
            checked_count=progression.checked_count,
            complete_reward_eligible=(
                progression.all_checked
                and game.complete_reward is not None
                and not complete_claimed
            ),
            complete_reward_claimed=complete_claimed,
            complete_reward_code=complete.code if complete_claimed else None,
        )

    async def list_game_checkins(self, game_id: str) -> list[CheckinEntry]:
        """Every stored day record of a game, ordered by user then day."""
        await self.games.get(game_id)
        docs = await self.store.scan(paths.game_checkins_prefix(game_id))

        entries = []
        for path, doc in docs:
            key = paths.parse_checkin_day(path)
            if key is None:
                continue
            record = CheckinRecord.from_doc(doc)
            entries.append(
                CheckinEntry(
                    user_id=key[0],
                    day_index=key[1],
                    checked=record.checked,
                    date=record.date,
                    request_token=record.request_token,
                    code=record.code,
                    created_at=record.created_at,
                    rolled_back_at=record.rolled_back_at,
                )
            )
        entries.sort(key=lambda e: (e.user_id, e.day_index))
        return entries

    # =========================================================================
    # Claims
    # =========================================================================

    async def claim_day(
        self, game_id: str, user_id: str, day_index: int, request_token: str
    ) -> ClaimResult:
        """Check in ``day_index`` and grant its reward.

        Raises:
            GameNotFoundError: unknown game
            DayNotClaimableError: not the user's claimable day
            AlreadyClaimedError: day already checked by another attempt
            CodesExhaustedError: code reward with no code left (check-in rolled back)
            InvalidDateError: trusted clock unstable
            TransactionFailedError: store retries exhausted or timed out
        """
        try:
            result = await self._claim_day(game_id, user_id, day_index, request_token)
        except ClaimError as e:
            record_claim("day", e.code)
            raise
        record_claim("day", "replayed" if result.replayed else "committed")
        return result

    async def _claim_day(
        self, game_id: str, user_id: str, day_index: int, request_token: str
    ) -> ClaimResult:
        game = await self.games.get(game_id)
        if not 0 <= day_index < game.total_days:
            raise DayNotClaimableError(day_index, None)

        path = paths.checkin_day(game_id, user_id, day_index)
        reward = game.rewards[day_index]
        existing = CheckinRecord.from_doc(await self.store.get(path))

        if existing and existing.checked and existing.request_token == request_token:
            return await self._replay(
                game, game_id, user_id, path, day_slot(day_index), reward,
                request_token, day_index=day_index,
            )

        today = await self.clock.verified_today()
        records = await self.progression.load_records(game_id, user_id, game.total_days)
        progression = evaluate_progression(records, game.total_days, today, game.end_date)
        if progression.next_day != day_index:
            # decided on the fresh read: another tab may have won since `existing`
            current = records[day_index]
            if current is not None and current.checked:
                if current.request_token == request_token:
                    return await self._replay(
                        game, game_id, user_id, path, day_slot(day_index), reward,
                        request_token, day_index=day_index,
                    )
                raise AlreadyClaimedError(path)
            raise DayNotClaimableError(day_index, progression.next_day)

        created_at = await self.clock.now()

        def mutation(current: Document | None) -> Document:
            return CheckinRecord(
                checked=True,
                date=today,
                created_at=created_at,
                reward_kind=reward.kind,
                amount=reward.amount if reward.kind == RewardKind.COIN else None,
            ).to_doc()

        result = await self._run_claim(
            "claim_day",
            game_id=game_id,
            user_id=user_id,
            path=path,
            slot_id=day_slot(day_index),
            reward=reward,
            request_token=request_token,
            mutation=mutation,
            is_finalized=_is_checked,
            restore_to=CheckinRecord(checked=False).to_doc(),
        )
        result.day_index = day_index
        result.complete_reward_eligible = (
            progression.checked_count + 1 == game.total_days
            and game.complete_reward is not None
        )
        return result

    async def claim_complete_reward(
        self, game_id: str, user_id: str, request_token: str
    ) -> ClaimResult:
        """Grant the reward for checking in every day.

        Raises:
            InvalidRewardError: the game has no complete reward
            DayNotClaimableError: some day is still unchecked
            AlreadyClaimedError: claimed by another attempt
        """
        try:
            result = await self._claim_complete_reward(game_id, user_id, request_token)
        except ClaimError as e:
            record_claim("complete", e.code)
            raise
        record_claim("complete", "replayed" if result.replayed else "committed")
        return result

    async def _claim_complete_reward(
        self, game_id: str, user_id: str, request_token: str
    ) -> ClaimResult:
        game = await self.games.get(game_id)
        reward = game.complete_reward
        if reward is None:
            raise InvalidRewardError("This game has no complete reward", {"gameId": game_id})

        path = paths.complete_reward(game_id, user_id)
        existing = CompleteRewardRecord.from_doc(await self.store.get(path))
        if existing and existing.claimed and existing.request_token == request_token:
            return await self._replay(
                game, game_id, user_id, path, COMPLETE_SLOT, reward, request_token
            )
        if existing and existing.claimed:
            raise AlreadyClaimedError(path)

        today = await self.clock.verified_today()
        progression = await self.progression.evaluate(
            game_id, user_id, game.total_days, today, game.end_date
        )
        if not progression.all_checked:
            raise DayNotClaimableError(game.total_days, progression.next_day)

        created_at = await self.clock.now()

        def mutation(current: Document | None) -> Document:
            return CompleteRewardRecord(
                claimed=True,
                created_at=created_at,
                reward_kind=reward.kind,
                amount=reward.amount if reward.kind == RewardKind.COIN else None,
            ).to_doc()

        result = await self._run_claim(
            "claim_complete_reward",
            game_id=game_id,
            user_id=user_id,
            path=path,
            slot_id=COMPLETE_SLOT,
            reward=reward,
            request_token=request_token,
            mutation=mutation,
            is_finalized=_is_claimed,
            restore_to=CompleteRewardRecord(claimed=False).to_doc(),
        )
        return result

    async def _run_claim(
        self,
        saga_name: str,
        *,
        game_id: str,
        user_id: str,
        path: str,
        slot_id: str,
        reward: DayReward,
        request_token: str,
        mutation: Callable[[Document | None], Document],
        is_finalized: Callable[[Document | None], bool],
        restore_to: Document,
    ) -> ClaimResult:
        channel = paths.user_channel(game_id, user_id)

        try:
            async with ClaimSaga(saga_name, request_token) as saga:
                receipt: ClaimReceipt = await saga.run(
                    "record",
                    lambda: self.protocol.attempt(
                        path, request_token, mutation, is_finalized,
                        restore_to=restore_to, channel=channel,
                    ),
                    lambda r: self.protocol.rollback(r, channel),
                )
                code = await self._grant(saga, game_id, user_id, path, slot_id, reward)
                if code is not None:
                    await saga.run(
                        "attach_code",
                        lambda: self._attach_code(path, request_token, code, channel),
                    )
        except LostRaceError as e:
            if is_finalized(await self.store.get(path)):
                raise AlreadyClaimedError(path) from e
            raise

        logger.info(
            f"{saga_name} committed {path} ({request_token})"
            + (" [replay]" if receipt.replayed else "")
        )
        return ClaimResult(
            reward_kind=reward.kind,
            amount=reward.amount if reward.kind == RewardKind.COIN else None,
            code=code,
            replayed=receipt.replayed,
            request_token=request_token,
        )

    async def _grant(
        self,
        saga: ClaimSaga,
        game_id: str,
        user_id: str,
        path: str,
        slot_id: str,
        reward: DayReward,
    ) -> str | None:
        """Grant a record's reward as a saga step; returns the code, if any."""
        if reward.kind == RewardKind.COIN:
            await saga.run(
                "coins",
                lambda: self.coins.adjust(
                    user_id,
                    reward.amount,
                    request_token=_reward_token(path),
                    reason=_reward_reason(slot_id),
                ),
            )
            await self._publish_balance(user_id)
            return None

        pool_path = paths.code_pool(game_id, slot_id)
        return await saga.run(
            "code",
            lambda: self.codes.claim_next(pool_path, user_id, reward.codes),
            lambda code: self.codes.release(pool_path, user_id, code),
        )

    async def _attach_code(
        self, path: str, request_token: str, code: str, channel: str
    ) -> None:
        def txn(current: Document | None):
            if current is None or current.get("requestToken") != request_token:
                raise LostRaceError(path, current.get("requestToken") if current else None)
            if current.get("code") == code:
                return UNCHANGED, False
            return {**current, "code": code}, True

        written = await self.store.run_transaction(path, txn)
        if written and self.mirror is not None:
            await self.mirror.publish(channel, path, await self.store.get(path))

    async def _replay(
        self,
        game: GameConfig,
        game_id: str,
        user_id: str,
        path: str,
        slot_id: str,
        reward: DayReward,
        request_token: str,
        day_index: int | None = None,
    ) -> ClaimResult:
        """Same token again: finish the reward (idempotently) and report it."""
        record = ClaimRecord.from_doc(await self.store.get(path))
        code = record.code
        if reward.kind == RewardKind.COIN:
            await self.coins.adjust(
                user_id,
                reward.amount,
                request_token=_reward_token(path),
                reason=_reward_reason(slot_id),
            )
        elif code is None:
            pool_path = paths.code_pool(game_id, slot_id)
            code = await self.codes.claim_next(pool_path, user_id, reward.codes)
            await self._attach_code(
                path, request_token, code, paths.user_channel(game_id, user_id)
            )

        logger.info(f"Replayed claim {path} ({request_token})")
        eligible = False
        if day_index is not None:
            eligible = day_index == game.total_days - 1 and game.complete_reward is not None
        return ClaimResult(
            day_index=day_index,
            reward_kind=reward.kind,
            amount=reward.amount if reward.kind == RewardKind.COIN else None,
            code=code,
            replayed=True,
            complete_reward_eligible=eligible,
            request_token=request_token,
        )

    # =========================================================================
    # Coupons & coins
    # =========================================================================

    async def redeem_coupon(
        self,
        game_id: str,
        user_id: str,
        item_index: int,
        price: Decimal | None,
        request_token: str,
    ) -> CouponResult:
        """Spend coins on a coupon item and receive one of its codes.

        The code is reserved first, then the price is debited; a failed debit
        releases the code. The same token returns the same code without
        charging twice.

        Raises:
            InvalidRewardError: unknown item or price mismatch
            InsufficientBalanceError: balance below the price
            CodesExhaustedError: item sold out
        """
        try:
            result = await self._redeem_coupon(
                game_id, user_id, item_index, price, request_token
            )
        except ClaimError as e:
            record_claim("coupon", e.code)
            raise
        record_claim("coupon", "replayed" if result.replayed else "committed")
        return result

    async def _redeem_coupon(
        self,
        game_id: str,
        user_id: str,
        item_index: int,
        price: Decimal | None,
        request_token: str,
    ) -> CouponResult:
        game = await self.games.get(game_id)
        if not 0 <= item_index < len(game.coupon_items):
            raise InvalidRewardError(
                f"Unknown coupon item {item_index}", {"itemIndex": item_index}
            )
        item = game.coupon_items[item_index]
        if price is not None and Decimal(price) != item.price:
            raise InvalidRewardError(
                "Coupon price changed, please reload",
                {"expected": str(item.price), "given": str(price)},
            )

        pool_path = paths.code_pool(game_id, coupon_slot(item_index))
        claimant_id = f"{user_id}#{request_token}"
        pool = CodePool.from_doc(await self.store.get(pool_path))
        replayed = pool is not None and claimant_id in pool.claimed_by.values()

        if not replayed and item.price > 0:
            balance = await self.coins.get_balance(user_id)
            if balance < item.price:
                raise InsufficientBalanceError(balance, -item.price)

        async with ClaimSaga("redeem_coupon", request_token) as saga:
            code = await saga.run(
                "code",
                lambda: self.codes.claim_next(pool_path, claimant_id, item.codes),
                lambda c: self.codes.release(pool_path, claimant_id, c),
            )
            if item.price > 0:
                balance = await saga.run(
                    "debit",
                    lambda: self.coins.adjust(
                        user_id,
                        -item.price,
                        request_token=f"coupon:{request_token}",
                        allow_negative=True,
                        reason=f"coupon:{game_id}:{item_index}",
                    ),
                )
            else:
                balance = await self.coins.get_balance(user_id)

        await self._publish_balance(user_id)
        logger.info(f"Coupon {item_index} of {game_id} redeemed by {user_id}")
        return CouponResult(
            item_index=item_index,
            code=code,
            price=item.price,
            balance=balance,
            replayed=replayed,
            request_token=request_token,
        )

    async def get_balance(self, user_id: str) -> Decimal:
        return await self.coins.get_balance(user_id)

    async def get_transactions(
        self, user_id: str, limit: int = 100
    ) -> list[CoinTransactionResponse]:
        """Applied coin adjustments of a user, newest first."""
        return [
            CoinTransactionResponse(
                user_id=entry.user_id,
                amount=entry.amount,
                reason=entry.reason,
                request_token=entry.request_token,
                balance_after=entry.balance_after,
                created_at=entry.created_at,
            )
            for entry in await self.coins.history(user_id, limit)
        ]

    async def adjust_balance(
        self,
        user_id: str,
        delta: Decimal,
        request_token: str,
        reason: str = "admin_adjust",
    ) -> Decimal:
        """Credit or debit coins outside of a claim (never below zero)."""
        amount = await self.coins.adjust(
            user_id,
            delta,
            request_token=request_token,
            allow_negative=True,
            reason=reason,
        )
        await self._publish_balance(user_id)
        return amount

    async def _publish_balance(self, user_id: str) -> None:
        if self.mirror is None:
            return
        path = paths.balance(user_id)
        await self.mirror.publish(path, path, await self.store.get(path))
