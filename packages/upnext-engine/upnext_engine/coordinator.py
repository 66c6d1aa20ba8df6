import logging
from typing import Callable, Optional

import redis.asyncio as redis

from upnext_models.item import Item, ItemState, item_from_hash
from upnext_models.room import AdvanceResult, PlaybackState
from upnext_redis.client import (
    commit_advance_atomic,
    get_advance_result,
    get_item,
    get_item_votes,
    get_room,
    read_room_state,
)

from upnext_engine.errors import Conflict, ItemNotFound, NoItemsAvailable, RoomNotFound
from upnext_engine.ledger import net_score
from upnext_engine.locks import RoomLocks
from upnext_engine.ranking import RankingView
from upnext_engine.store import utc_now_ms

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 60
DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0
MAX_COMMIT_ATTEMPTS = 2


class PlaybackCoordinator:
    """Per-room Idle/Playing state machine driving the active item pointer.

    ``advance`` runs under a per-room lock and commits through a
    compare-and-swap on the room version, so concurrent advances from this
    process queue up and advances from other processes lose the swap and are
    re-run once before surfacing ``Conflict``. A committed advance is never
    rolled back, even if the caller has gone away.
    """

    def __init__(
        self,
        client: redis.Redis,
        ranking: Optional[RankingView] = None,
        locks: Optional[RoomLocks] = None,
        token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        lock_timeout_seconds: Optional[float] = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], int] = utc_now_ms,
    ):
        self.client = client
        self.ranking = ranking or RankingView(client)
        self.locks = locks or RoomLocks()
        self.token_ttl_seconds = token_ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds
        self.clock = clock

    async def current_active(self, room_id: str) -> Optional[Item]:
        state = await read_room_state(self.client, room_id)
        if state is None:
            raise RoomNotFound(room_id)
        active = state["active"]
        if active is None:
            return None
        return item_from_hash(active["fields"], score=active["score"])

    async def playback_state(self, room_id: str) -> PlaybackState:
        active = await self.current_active(room_id)
        return PlaybackState.PLAYING if active else PlaybackState.IDLE

    async def advance(self, room_id: str, token: Optional[str] = None) -> AdvanceResult:
        async with self.locks.hold(room_id, timeout=self.lock_timeout_seconds):
            for attempt in range(1, MAX_COMMIT_ATTEMPTS + 1):
                if token:
                    cached = await get_advance_result(self.client, room_id, token)
                    if cached is not None:
                        return await self._replay(room_id, token, cached)

                ranked, version = await self.ranking.ranked_pending_with_version(room_id)
                candidate = ranked[0] if ranked else None

                status, item_id, new_version = await commit_advance_atomic(
                    self.client,
                    room_id,
                    expected_version=version,
                    candidate_id=candidate.item_id if candidate else None,
                    now_ms=self.clock(),
                    token=token,
                    token_ttl_seconds=self.token_ttl_seconds,
                )

                if status == "conflict":
                    logger.warning(
                        "Advance lost compare-and-swap",
                        extra={"roomId": room_id, "expectedVersion": version, "version": new_version, "attempt": attempt},
                    )
                    continue
                if status == "room_not_found":
                    raise RoomNotFound(room_id)
                if status == "replayed":
                    return await self._replay(room_id, token, item_id)

                if candidate is None:
                    logger.info("Queue empty, room idle", extra={"roomId": room_id, "version": new_version})
                    raise NoItemsAvailable(room_id)

                logger.info(
                    "Advanced room",
                    extra={"roomId": room_id, "itemId": item_id, "score": candidate.score, "version": new_version},
                )
                return AdvanceResult(
                    room_id=room_id,
                    item=candidate.model_copy(update={"state": ItemState.ACTIVE}),
                    version=new_version,
                )

        raise Conflict(f"Room {room_id} changed during advance")

    async def _replay(self, room_id: str, token: Optional[str], item_id: str) -> AdvanceResult:
        logger.info("Replaying advance token", extra={"roomId": room_id, "token": token, "itemId": item_id})
        if not item_id:
            raise NoItemsAvailable(room_id)
        room = await get_room(self.client, room_id)
        if room is None:
            raise RoomNotFound(room_id)
        votes = await get_item_votes(self.client, item_id)
        item = item_from_hash(await get_item(self.client, item_id) or {}, score=net_score(votes.values()))
        if item is None:
            raise ItemNotFound(room_id, item_id)
        # Replays report the item as it was handed out, even if it has since been played.
        item = item.model_copy(update={"state": ItemState.ACTIVE})
        return AdvanceResult(room_id=room_id, item=item, version=int(room.get("version") or 0), replayed=True)
