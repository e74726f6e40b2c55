"""Logical document paths of the ledger."""


def checkin_day(game_id: str, user_id: str, day_index: int) -> str:
    return f"checkins/{game_id}/users/{user_id}/days/{day_index}"


def complete_reward(game_id: str, user_id: str) -> str:
    return f"checkins/{game_id}/users/{user_id}/rewards/completeReward"


def code_pool(game_id: str, reward_slot_id: str) -> str:
    return f"codePools/{game_id}/{reward_slot_id}"


def balance(user_id: str) -> str:
    return f"balances/{user_id}"


def game(game_id: str) -> str:
    return f"games/{game_id}"


def legacy_checkin_day(game_id: str, user_id: str, day_index: int) -> str:
    return f"legacy/checkins/{game_id}/{user_id}/{day_index}"


def legacy_complete_reward(game_id: str, user_id: str) -> str:
    return f"legacy/checkins/{game_id}/{user_id}/completeRewardClaimed"


def user_channel(game_id: str, user_id: str) -> str:
    """Mirror channel carrying every record update of one user in one game."""
    return f"checkins/{game_id}/users/{user_id}"


def coin_transaction(user_id: str, request_token: str) -> str:
    return f"coinTransactions/{user_id}/{request_token}"


def coin_transactions_prefix(user_id: str) -> str:
    return f"coinTransactions/{user_id}/"


def game_checkins_prefix(game_id: str) -> str:
    return f"checkins/{game_id}/users/"


def parse_checkin_day(path: str) -> tuple[str, int] | None:
    """(userId, dayIndex) of a day record path, None for any other path."""
    parts = path.split("/")
    if len(parts) != 6 or parts[0] != "checkins" or parts[2] != "users" or parts[4] != "days":
        return None
    if not parts[5].isdigit():
        return None
    return parts[3], int(parts[5])
