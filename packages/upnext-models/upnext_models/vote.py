from enum import Enum

from pydantic import BaseModel


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class VoteIn(BaseModel):
    # Plain string so an unknown direction reaches the ledger and is rejected there.
    direction: str


class VoteOut(BaseModel):
    item_id: str
    score: int
