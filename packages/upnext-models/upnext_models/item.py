from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ItemState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PLAYED = "played"


class DisplayMetadata(BaseModel):
    title: str
    small_img: str = ""
    big_img: str = ""


class ItemCreate(BaseModel):
    url: str


class Item(BaseModel):
    item_id: str
    room_id: str
    url: str
    extracted_id: str
    title: str
    small_img: str = ""
    big_img: str = ""
    state: ItemState
    created_at: int
    seq: int
    submitted_by: str = ""
    score: int = 0


def _parse_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def item_from_hash(data: Dict[str, str], score: int = 0) -> Optional[Item]:
    """Build an Item from the flat Redis hash stored under ``upnext:item:<id>``."""
    if not data or not data.get("itemId"):
        return None
    return Item(
        item_id=data["itemId"],
        room_id=data.get("roomId", ""),
        url=data.get("url", ""),
        extracted_id=data.get("extractedId", ""),
        title=data.get("title", ""),
        small_img=data.get("smallImg", ""),
        big_img=data.get("bigImg", ""),
        state=ItemState(data.get("state", ItemState.PENDING.value)),
        created_at=_parse_int(data.get("createdAt")),
        seq=_parse_int(data.get("seq")),
        submitted_by=data.get("submittedBy", ""),
        score=score,
    )
