from typing import Iterable, List

import redis.asyncio as redis

from upnext_models.item import Item, ItemState, item_from_hash
from upnext_redis.client import read_room_state

from upnext_engine.errors import RoomNotFound


def rank_key(item: Item) -> tuple[int, int, int]:
    # Highest score first; equal scores keep submission order.
    return (-item.score, item.created_at, item.seq)


def rank_items(items: Iterable[Item]) -> List[Item]:
    return sorted((item for item in items if item.state == ItemState.PENDING), key=rank_key)


def items_from_state(entries: list[dict]) -> List[Item]:
    items = []
    for entry in entries:
        item = item_from_hash(entry["fields"], score=entry["score"])
        if item is not None:
            items.append(item)
    return items


class RankingView:
    """Ordered pending items for a room, rebuilt from the store on every read."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def ranked_pending_with_version(self, room_id: str) -> tuple[List[Item], int]:
        state = await read_room_state(self.client, room_id)
        if state is None:
            raise RoomNotFound(room_id)
        return rank_items(items_from_state(state["pending"])), state["version"]

    async def ranked_pending(self, room_id: str) -> List[Item]:
        ranked, _ = await self.ranked_pending_with_version(room_id)
        return ranked
