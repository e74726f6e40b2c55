"""Business logic services."""

from dataclasses import dataclass

from reward_engine.config import Settings
from reward_engine.ledger.mirror import LedgerMirror
from reward_engine.ledger.store import LedgerStore
from reward_engine.services.checkin import CheckinService
from reward_engine.services.clock import TrustedClock
from reward_engine.services.games import GameCatalog
from reward_engine.services.migration import LegacyMigrator


@dataclass
class Services:
    """Service graph shared by the API routers."""

    store: LedgerStore
    clock: TrustedClock
    checkin: CheckinService
    games: GameCatalog
    migrator: LegacyMigrator
    mirror: LedgerMirror | None = None


def build_services(
    settings: Settings,
    store: LedgerStore,
    mirror: LedgerMirror | None = None,
) -> Services:
    clock = TrustedClock(
        store,
        settings.timezone,
        double_read_delay=settings.clock_double_read_delay,
        max_attempts=settings.clock_max_attempts,
    )
    checkin = CheckinService(
        store, clock, mirror=mirror, token_window=settings.coin_token_window
    )
    return Services(
        store=store,
        clock=clock,
        checkin=checkin,
        games=checkin.games,
        migrator=LegacyMigrator(store, clock),
        mirror=mirror,
    )


__all__ = ["Services", "build_services", "CheckinService", "TrustedClock"]
