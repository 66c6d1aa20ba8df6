from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from upnext_models.item import Item
from upnext_models.vote import VoteDirection


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


class Room(BaseModel):
    room_id: str
    created_at: int
    active_item_id: Optional[str] = None
    version: int = 0

    @property
    def state(self) -> PlaybackState:
        return PlaybackState.PLAYING if self.active_item_id else PlaybackState.IDLE


class RoomOut(BaseModel):
    room_id: str
    created_at: int
    state: PlaybackState
    version: int
    share_path: str


class RoomSnapshot(BaseModel):
    room_id: str
    version: int
    state: PlaybackState
    active: Optional[Item] = None
    queue: List[Item] = []
    voter_view: Dict[str, bool] = {}
    my_votes: Dict[str, VoteDirection] = {}
    generated_at: int
    poll_interval_ms: int


class AdvanceIn(BaseModel):
    token: Optional[str] = None


class AdvanceResult(BaseModel):
    room_id: str
    item: Item
    version: int
    replayed: bool = False
