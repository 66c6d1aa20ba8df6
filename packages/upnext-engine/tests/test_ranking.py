import pytest

from upnext_engine import PlaybackCoordinator, RankingView, RoomNotFound, rank_items
from upnext_models.item import Item, ItemState


def _item(item_id, score, created_at, seq=0, state=ItemState.PENDING):
    return Item(
        item_id=item_id,
        room_id="room",
        url=f"https://youtu.be/{item_id}",
        extracted_id=item_id,
        title=item_id,
        state=state,
        created_at=created_at,
        seq=seq,
        score=score,
    )


def test_rank_items_orders_by_score_then_age():
    items = [_item("A", 2, 1), _item("B", 2, 0), _item("C", 5, 2)]
    assert [item.item_id for item in rank_items(items)] == ["C", "B", "A"]


def test_rank_items_uses_sequence_when_timestamps_match():
    items = [_item("late", 0, 5, seq=2), _item("early", 0, 5, seq=1)]
    assert [item.item_id for item in rank_items(items)] == ["early", "late"]


def test_rank_items_drops_non_pending():
    items = [_item("A", 9, 0, state=ItemState.ACTIVE), _item("B", 0, 1), _item("C", 3, 2, state=ItemState.PLAYED)]
    assert [item.item_id for item in rank_items(items)] == ["B"]


@pytest.mark.asyncio
async def test_ranked_pending_from_store(redis_client, room, submit, upvote):
    a = await submit(room.room_id, "A", created_at=1)
    b = await submit(room.room_id, "B", created_at=0)
    c = await submit(room.room_id, "C", created_at=2)
    await upvote(room.room_id, a, 2)
    await upvote(room.room_id, b, 2)
    await upvote(room.room_id, c, 5)

    ranked = await RankingView(redis_client).ranked_pending(room.room_id)

    assert [item.extracted_id for item in ranked] == ["C", "B", "A"]
    assert [item.score for item in ranked] == [5, 2, 2]


@pytest.mark.asyncio
async def test_ranked_pending_is_stable_across_reads(redis_client, room, submit, upvote):
    for n in range(6):
        item = await submit(room.room_id, f"v{n}", created_at=100)
        await upvote(room.room_id, item, n % 3)

    view = RankingView(redis_client)
    first = [item.item_id for item in await view.ranked_pending(room.room_id)]
    for _ in range(3):
        assert [item.item_id for item in await view.ranked_pending(room.room_id)] == first


@pytest.mark.asyncio
async def test_ranking_reflects_vote_changes_immediately(redis_client, ledger, room, submit):
    a = await submit(room.room_id, "A", created_at=0)
    b = await submit(room.room_id, "B", created_at=1)
    view = RankingView(redis_client)
    assert [item.item_id for item in await view.ranked_pending(room.room_id)] == [a.item_id, b.item_id]

    await ledger.cast_vote(room.room_id, b.item_id, "alice", "up")
    assert [item.item_id for item in await view.ranked_pending(room.room_id)] == [b.item_id, a.item_id]

    await ledger.withdraw_vote(room.room_id, b.item_id, "alice")
    assert [item.item_id for item in await view.ranked_pending(room.room_id)] == [a.item_id, b.item_id]


@pytest.mark.asyncio
async def test_ranked_pending_excludes_active_item(redis_client, room, submit):
    a = await submit(room.room_id, "A", created_at=0)
    b = await submit(room.room_id, "B", created_at=1)
    await PlaybackCoordinator(redis_client).advance(room.room_id)

    ranked = await RankingView(redis_client).ranked_pending(room.room_id)
    assert [item.item_id for item in ranked] == [b.item_id]
    assert a.item_id not in {item.item_id for item in ranked}


@pytest.mark.asyncio
async def test_unknown_room(redis_client):
    with pytest.raises(RoomNotFound):
        await RankingView(redis_client).ranked_pending("nobody")
