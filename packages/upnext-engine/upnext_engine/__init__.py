from .coordinator import PlaybackCoordinator
from .errors import (
    Conflict,
    EngineError,
    Forbidden,
    InvalidDirection,
    InvalidInput,
    ItemNotFound,
    NoItemsAvailable,
    NotFound,
    RoomNotFound,
)
from .ledger import VoteLedger
from .locks import RoomLocks
from .ranking import RankingView, rank_items
from .store import ItemStore
from .sync import SnapshotReader

__all__ = [
    "Conflict",
    "EngineError",
    "Forbidden",
    "InvalidDirection",
    "InvalidInput",
    "ItemNotFound",
    "ItemStore",
    "NoItemsAvailable",
    "NotFound",
    "PlaybackCoordinator",
    "RankingView",
    "RoomLocks",
    "RoomNotFound",
    "SnapshotReader",
    "VoteLedger",
    "rank_items",
]
