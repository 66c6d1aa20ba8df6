from .client import (
    commit_advance_atomic,
    create_item,
    create_room,
    get_advance_result,
    get_item,
    get_items,
    get_played_ids,
    get_redis_client,
    get_room,
    read_room_state,
    record_vote_atomic,
    withdraw_vote_atomic,
)

__all__ = [
    "commit_advance_atomic",
    "create_item",
    "create_room",
    "get_advance_result",
    "get_item",
    "get_items",
    "get_played_ids",
    "get_redis_client",
    "get_room",
    "read_room_state",
    "record_vote_atomic",
    "withdraw_vote_atomic",
]
