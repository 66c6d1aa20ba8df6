import logging
from typing import Callable

import redis.asyncio as redis

from upnext_models.item import item_from_hash
from upnext_models.room import PlaybackState, RoomSnapshot
from upnext_models.vote import VoteDirection
from upnext_redis.client import read_room_state

from upnext_engine.errors import RoomNotFound
from upnext_engine.ranking import items_from_state, rank_items
from upnext_engine.store import utc_now_ms

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 10_000


class SnapshotReader:
    """Read model served to polling clients.

    Every snapshot is built from a single atomic read of the room, so clients
    can replace their local state with it wholesale. Clients that miss
    transitions between polls simply see a later state.
    """

    def __init__(
        self,
        client: redis.Redis,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        clock: Callable[[], int] = utc_now_ms,
    ):
        self.client = client
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock

    async def room_snapshot(self, room_id: str, voter_id: str = "") -> RoomSnapshot:
        state = await read_room_state(self.client, room_id, voter_id)
        if state is None:
            raise RoomNotFound(room_id)

        active = None
        entries = list(state["pending"])
        if state["active"] is not None:
            active = item_from_hash(state["active"]["fields"], score=state["active"]["score"])
            entries.append(state["active"])

        my_votes = {
            entry["fields"]["itemId"]: VoteDirection(entry["myVote"])
            for entry in entries
            if entry["myVote"] and entry["fields"].get("itemId")
        }
        queue = rank_items(items_from_state(state["pending"]))

        return RoomSnapshot(
            room_id=room_id,
            version=state["version"],
            state=PlaybackState.PLAYING if active else PlaybackState.IDLE,
            active=active,
            queue=queue,
            voter_view={item.item_id: item.item_id in my_votes for item in ([active] if active else []) + queue},
            my_votes=my_votes,
            generated_at=self.clock(),
            poll_interval_ms=self.poll_interval_ms,
        )
