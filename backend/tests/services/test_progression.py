"""Day-progression tests: sequential, once-per-calendar-day gating."""

from datetime import date, timedelta

from hypothesis import given, settings, strategies as st

from reward_engine.ledger import paths
from reward_engine.models.records import CheckinRecord
from reward_engine.services.progression import DayProgression, evaluate_progression

TODAY = date(2026, 3, 10)
YESTERDAY = TODAY - timedelta(days=1)


def checked(on: date | None) -> CheckinRecord:
    return CheckinRecord(checked=True, date=on, request_token="t")


class TestEvaluateProgression:

    def test_day_zero_first(self):
        progression = evaluate_progression([], 3, TODAY)

        assert progression.next_day == 0
        assert progression.checked_count == 0
        assert progression.all_checked is False

    def test_next_day_after_earlier_checkin(self):
        assert evaluate_progression([checked(YESTERDAY)], 3, TODAY).next_day == 1

    def test_one_day_per_calendar_day(self):
        assert evaluate_progression([checked(TODAY)], 3, TODAY).next_day is None

    def test_missing_date_counts_as_earlier(self):
        assert evaluate_progression([checked(None)], 3, TODAY).next_day == 1

    def test_unchecked_record_is_claimable_again(self):
        records = [checked(YESTERDAY), CheckinRecord(checked=False, date=TODAY)]

        assert evaluate_progression(records, 3, TODAY).next_day == 1

    def test_nothing_after_end_date(self):
        assert evaluate_progression([], 3, TODAY, end_date=YESTERDAY).next_day is None

    def test_end_date_itself_is_open(self):
        assert evaluate_progression([], 3, TODAY, end_date=TODAY).next_day == 0

    def test_all_checked(self):
        records = [checked(TODAY - timedelta(days=3 - i)) for i in range(3)]

        progression = evaluate_progression(records, 3, TODAY)

        assert progression.next_day is None
        assert progression.all_checked is True
        assert progression.checked_count == 3

    def test_no_days(self):
        progression = evaluate_progression([], 0, TODAY)

        assert progression.next_day is None
        assert progression.all_checked is False

    @given(
        flags=st.lists(st.booleans(), min_size=1, max_size=8),
        offsets=st.lists(st.integers(min_value=0, max_value=3), min_size=8, max_size=8),
    )
    @settings(max_examples=100, deadline=None)
    def test_claimable_day_is_first_unchecked(self, flags, offsets):
        """The claimable day always follows a fully checked prefix."""
        records = [
            CheckinRecord(checked=flag, date=TODAY - timedelta(days=offsets[i]))
            for i, flag in enumerate(flags)
        ]

        next_day = evaluate_progression(records, len(flags), TODAY).next_day

        if next_day is not None:
            assert all(flags[:next_day])
            assert not flags[next_day]
            if next_day > 0:
                assert records[next_day - 1].date < TODAY


class TestDayProgression:

    async def test_reads_durable_records(self, store):
        progression = DayProgression(store)
        await store.set(
            paths.checkin_day("g1", "u1", 0),
            checked(YESTERDAY).to_doc(),
        )

        assert await progression.next_claimable_day("g1", "u1", 3, TODAY) == 1
        assert await progression.next_claimable_day("g1", "u2", 3, TODAY) == 0
