import logging
from typing import Dict, Iterable

import redis.asyncio as redis

from upnext_models.vote import VoteDirection
from upnext_redis.client import get_item_votes, get_voter_votes, record_vote_atomic, withdraw_vote_atomic

from upnext_engine.errors import InvalidDirection, ItemNotFound

logger = logging.getLogger(__name__)


def parse_direction(direction: object) -> VoteDirection:
    if isinstance(direction, VoteDirection):
        return direction
    try:
        return VoteDirection(direction)
    except ValueError:
        raise InvalidDirection(direction)


def net_score(directions: Iterable[str]) -> int:
    score = 0
    for direction in directions:
        if direction == VoteDirection.UP.value:
            score += 1
        elif direction == VoteDirection.DOWN.value:
            score -= 1
    return score


class VoteLedger:
    """One vote per (voter, item), upserted atomically; scores are always derived.

    Only the voter's own field in the item's vote hash is written, so votes
    on different items or by different voters never contend on a room lock.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    async def cast_vote(self, room_id: str, item_id: str, voter_id: str, direction: object) -> int:
        vote = parse_direction(direction)
        applied, score = await record_vote_atomic(self.client, room_id, item_id, voter_id, vote.value)
        if not applied:
            logger.info("Vote rejected, item not votable", extra={"roomId": room_id, "itemId": item_id})
            raise ItemNotFound(room_id, item_id)
        logger.info(
            "Vote recorded",
            extra={"roomId": room_id, "itemId": item_id, "voterId": voter_id, "direction": vote.value, "score": score},
        )
        return score

    async def withdraw_vote(self, room_id: str, item_id: str, voter_id: str) -> int:
        applied, score = await withdraw_vote_atomic(self.client, room_id, item_id, voter_id)
        if not applied:
            raise ItemNotFound(room_id, item_id)
        logger.info("Vote withdrawn", extra={"roomId": room_id, "itemId": item_id, "voterId": voter_id, "score": score})
        return score

    async def score_of(self, item_id: str) -> int:
        votes = await get_item_votes(self.client, item_id)
        return net_score(votes.values())

    async def votes_of(self, voter_id: str, item_ids: list[str]) -> Dict[str, VoteDirection]:
        votes = await get_voter_votes(self.client, voter_id, item_ids)
        return {item_id: VoteDirection(direction) for item_id, direction in votes.items()}
