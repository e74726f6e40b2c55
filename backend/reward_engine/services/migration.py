"""Backfill of legacy check-in records.

The previous storage kept check-ins under ``legacy/checkins/...`` either as a
bare boolean or as a loosely-typed object (``checked``/``claimed``, ``date``,
``ts`` in epoch milliseconds, ``key``). Migration copies checked records into
the current layout, once, and never touches a record that already exists.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from reward_engine.ledger import paths
from reward_engine.ledger.store import UNCHANGED, Document, LedgerStore
from reward_engine.models.records import CheckinRecord, CompleteRewardRecord
from reward_engine.schemas.checkin import MigrationResult
from reward_engine.services.clock import TrustedClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LegacyBool:
    value: bool


@dataclass(frozen=True)
class StructuredRecord:
    done: bool
    date: str | None = None
    ts: int | None = None
    key: str | None = None


LegacyRecord = LegacyBool | StructuredRecord


def parse_legacy(raw: Any, flag: str = "checked") -> LegacyRecord | None:
    """Classify a raw legacy value; None when there is nothing to migrate."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return LegacyBool(raw)
    if isinstance(raw, dict):
        ts = raw.get("ts")
        return StructuredRecord(
            done=raw.get(flag) is True,
            date=raw.get("date") if isinstance(raw.get("date"), str) else None,
            ts=int(ts) if isinstance(ts, (int, float)) and not isinstance(ts, bool) else None,
            key=raw.get("key") if isinstance(raw.get("key"), str) else None,
        )
    return None


def is_done(record: LegacyRecord | None) -> bool:
    match record:
        case LegacyBool(value=value):
            return value
        case StructuredRecord(done=done):
            return done
    return False


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def build_checkin_record(
    legacy: LegacyRecord, now: datetime
) -> CheckinRecord:
    """Current-layout record for a checked legacy record.

    A legacy record dated today whose timestamp is from another day is stale
    and migrates as unchecked.
    """
    today = now.date()
    ts = legacy.ts if isinstance(legacy, StructuredRecord) else None
    key = legacy.key if isinstance(legacy, StructuredRecord) else None
    legacy_date = _parse_date(legacy.date) if isinstance(legacy, StructuredRecord) else None

    ts_ms = ts if ts is not None else int(now.timestamp() * 1000)
    created_at = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).astimezone(now.tzinfo)
    record_date = legacy_date or today

    checked = True
    if record_date == today:
        checked = created_at.date() == today

    return CheckinRecord(
        checked=checked,
        date=record_date,
        created_at=created_at,
        request_token=key or f"{ts_ms}_migrated",
    )


def build_complete_record(legacy: LegacyRecord, now: datetime) -> CompleteRewardRecord:
    ts = legacy.ts if isinstance(legacy, StructuredRecord) else None
    key = legacy.key if isinstance(legacy, StructuredRecord) else None
    ts_ms = ts if ts is not None else int(now.timestamp() * 1000)
    return CompleteRewardRecord(
        claimed=True,
        created_at=datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc),
        request_token=key or f"{ts_ms}_migrated",
    )


class LegacyMigrator:
    """Copies legacy records into the current layout."""

    def __init__(self, store: LedgerStore, clock: TrustedClock) -> None:
        self.store = store
        self.clock = clock

    async def _write_if_absent(self, path: str, doc: Document) -> bool:
        def txn(current: Document | None):
            if current is not None:
                return UNCHANGED, False
            return doc, True

        return await self.store.run_transaction(path, txn)

    async def migrate_checkin(self, game_id: str, user_id: str, day_index: int) -> bool:
        """Migrate one day; returns True if a record was written."""
        legacy = parse_legacy(
            await self.store.get(paths.legacy_checkin_day(game_id, user_id, day_index))
        )
        if not is_done(legacy):
            return False

        record = build_checkin_record(legacy, await self.clock.now())
        written = await self._write_if_absent(
            paths.checkin_day(game_id, user_id, day_index), record.to_doc()
        )
        if written:
            logger.info(
                f"Migrated day {day_index} of {game_id}/{user_id} "
                f"(checked={record.checked})"
            )
        return written

    async def migrate_complete_reward(self, game_id: str, user_id: str) -> bool:
        legacy = parse_legacy(
            await self.store.get(paths.legacy_complete_reward(game_id, user_id)),
            flag="claimed",
        )
        if not is_done(legacy):
            return False

        record = build_complete_record(legacy, await self.clock.now())
        written = await self._write_if_absent(
            paths.complete_reward(game_id, user_id), record.to_doc()
        )
        if written:
            logger.info(f"Migrated complete reward of {game_id}/{user_id}")
        return written

    async def migrate_user(
        self, game_id: str, user_id: str, total_days: int
    ) -> MigrationResult:
        """Migrate every day and the complete reward of one user."""
        migrated_days = [
            day_index
            for day_index in range(total_days)
            if await self.migrate_checkin(game_id, user_id, day_index)
        ]
        complete = await self.migrate_complete_reward(game_id, user_id)
        return MigrationResult(
            migrated_days=migrated_days, complete_reward_migrated=complete
        )
