"""Game configuration API."""

from fastapi import APIRouter

from reward_engine.api.deps import ServicesDep
from reward_engine.ledger import paths
from reward_engine.models.game import COMPLETE_SLOT, GameConfig, coupon_slot, day_slot
from reward_engine.schemas.checkin import PoolStatusResponse
from reward_engine.schemas.common import ErrorResponse

router = APIRouter(prefix="/games", tags=["Games"])


@router.put("/{game_id}", response_model=GameConfig, response_model_by_alias=True)
async def put_game(game_id: str, config: GameConfig, services: ServicesDep):
    """Publish or replace a game's configuration."""
    return await services.games.put(game_id, config)


@router.get(
    "/{game_id}",
    response_model=GameConfig,
    response_model_by_alias=True,
    responses={404: {"model": ErrorResponse, "description": "Game not found"}},
)
async def get_game(game_id: str, services: ServicesDep):
    return await services.games.get(game_id)


@router.get(
    "/{game_id}/pools",
    response_model=list[PoolStatusResponse],
    responses={404: {"model": ErrorResponse, "description": "Game not found"}},
)
async def get_pools(game_id: str, services: ServicesDep):
    """Allocation state of every code pool of the game."""
    game = await services.games.get(game_id)
    cursor = services.checkin.codes

    slots: list[tuple[str, list[str]]] = [
        (day_slot(i), reward.codes)
        for i, reward in enumerate(game.rewards)
        if reward.codes
    ]
    if game.complete_reward is not None and game.complete_reward.codes:
        slots.append((COMPLETE_SLOT, game.complete_reward.codes))
    slots += [
        (coupon_slot(i), item.codes) for i, item in enumerate(game.coupon_items)
    ]

    result = []
    for slot_id, codes in slots:
        status = await cursor.pool_status(paths.code_pool(game_id, slot_id), codes)
        result.append(
            PoolStatusResponse(
                slot_id=slot_id,
                total=status.total,
                claimed=status.claimed,
                remaining=status.remaining,
                cursor=status.cursor,
            )
        )
    return result
