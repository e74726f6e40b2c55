"""Day-progression state machine.

Days are claimed strictly in order, at most one per calendar day:

- day 0 is claimable while unchecked;
- day i > 0 is claimable once day i-1 is checked on an earlier date
  (a checked record without a date counts as earlier);
- a record stored with ``checked=false`` is claimable again;
- nothing is claimable after the game's end date;
- once the last day is checked the complete reward becomes available.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from reward_engine.ledger import paths
from reward_engine.ledger.store import LedgerStore
from reward_engine.models.records import CheckinRecord


@dataclass(frozen=True)
class Progression:
    next_day: int | None
    checked_count: int
    all_checked: bool


def evaluate_progression(
    records: Sequence[CheckinRecord | None],
    total_days: int,
    today: date,
    end_date: date | None = None,
) -> Progression:
    """Evaluate a user's day records (index i = day i, None = missing)."""
    days = list(records[:total_days])
    days += [None] * (total_days - len(days))

    checked = [r is not None and r.checked for r in days]
    checked_count = sum(checked)
    all_checked = total_days > 0 and all(checked)

    if all_checked or total_days <= 0:
        return Progression(None, checked_count, all_checked)
    if end_date is not None and today > end_date:
        return Progression(None, checked_count, all_checked)

    first_open = checked.index(False)
    if first_open == 0:
        return Progression(0, checked_count, all_checked)

    previous = days[first_open - 1]
    if previous.date is None or previous.date < today:
        return Progression(first_open, checked_count, all_checked)
    return Progression(None, checked_count, all_checked)


class DayProgression:
    """Reads durable day records and evaluates eligibility."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def load_records(
        self, game_id: str, user_id: str, total_days: int
    ) -> list[CheckinRecord | None]:
        docs = await self.store.get_many(
            [paths.checkin_day(game_id, user_id, i) for i in range(total_days)]
        )
        return [CheckinRecord.from_doc(doc) for doc in docs]

    async def evaluate(
        self,
        game_id: str,
        user_id: str,
        total_days: int,
        today: date,
        end_date: date | None = None,
    ) -> Progression:
        records = await self.load_records(game_id, user_id, total_days)
        return evaluate_progression(records, total_days, today, end_date)

    async def next_claimable_day(
        self,
        game_id: str,
        user_id: str,
        total_days: int,
        today: date,
        end_date: date | None = None,
    ) -> int | None:
        progression = await self.evaluate(game_id, user_id, total_days, today, end_date)
        return progression.next_day
