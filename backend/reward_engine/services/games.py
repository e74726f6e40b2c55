"""Game configuration catalogue."""

import logging

from reward_engine.ledger import paths
from reward_engine.ledger.store import LedgerStore
from reward_engine.models.game import GameConfig
from reward_engine.utils.errors import GameNotFoundError

logger = logging.getLogger(__name__)


class GameCatalog:
    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def get(self, game_id: str) -> GameConfig:
        """Raises GameNotFoundError if the game was never published."""
        config = GameConfig.from_doc(await self.store.get(paths.game(game_id)))
        if config is None:
            raise GameNotFoundError(game_id)
        return config

    async def put(self, game_id: str, config: GameConfig) -> GameConfig:
        """Publish (or replace) a game's configuration.

        Code pools follow the new code lists on their next allocation.
        """
        await self.store.set(paths.game(game_id), config.to_doc())
        logger.info(f"Published game {game_id}: {config.total_days} days")
        return config
