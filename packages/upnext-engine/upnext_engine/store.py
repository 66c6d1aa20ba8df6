import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import redis.asyncio as redis

from upnext_models.item import DisplayMetadata, Item, ItemState, item_from_hash
from upnext_models.room import Room
from upnext_redis.client import create_item, create_room, get_item, get_items, get_played_ids, get_room

from upnext_engine.errors import InvalidInput, RoomNotFound

logger = logging.getLogger(__name__)


def utc_now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _room_from_hash(data: dict) -> Room:
    return Room(
        room_id=data["roomId"],
        created_at=int(data.get("createdAt") or 0),
        active_item_id=data.get("active") or None,
        version=int(data.get("version") or 0),
    )


class ItemStore:
    """Room and item records kept in Redis.

    Items enter as ``pending``; every later state change belongs to the
    playback coordinator.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def create_room(self, creator_id: str) -> Room:
        if not creator_id:
            raise InvalidInput("creator id is required")
        created = await create_room(self.client, creator_id, utc_now_ms())
        if created:
            logger.info("Created room", extra={"roomId": creator_id})
        return await self.get_room(creator_id)

    async def get_room(self, room_id: str) -> Room:
        data = await get_room(self.client, room_id)
        if not data:
            raise RoomNotFound(room_id)
        return _room_from_hash(data)

    async def create_item(
        self,
        room_id: str,
        url: str,
        extracted_id: str,
        metadata: DisplayMetadata,
        submitted_by: str = "",
        created_at: Optional[int] = None,
    ) -> Item:
        if not url or not extracted_id:
            raise InvalidInput("url and extracted id are required")

        item_id = str(uuid.uuid4())
        created_at = utc_now_ms() if created_at is None else created_at
        seq = await create_item(self.client, room_id, item_id, {
            "url": url,
            "extractedId": extracted_id,
            "title": metadata.title,
            "smallImg": metadata.small_img,
            "bigImg": metadata.big_img,
            "submittedBy": submitted_by,
            "createdAt": created_at,
        })
        if seq is None:
            raise RoomNotFound(room_id)

        logger.info("Item submitted", extra={"roomId": room_id, "itemId": item_id, "extractedId": extracted_id})
        return Item(
            item_id=item_id,
            room_id=room_id,
            url=url,
            extracted_id=extracted_id,
            title=metadata.title,
            small_img=metadata.small_img,
            big_img=metadata.big_img,
            state=ItemState.PENDING,
            created_at=created_at,
            seq=seq,
            submitted_by=submitted_by,
        )

    async def get_item(self, item_id: str) -> Optional[Item]:
        return item_from_hash(await get_item(self.client, item_id) or {})

    async def played_history(self, room_id: str, limit: int = 50) -> List[Item]:
        await self.get_room(room_id)
        item_ids = await get_played_ids(self.client, room_id, limit)
        items = [item_from_hash(data) for data in await get_items(self.client, item_ids)]
        return [item for item in items if item is not None]
