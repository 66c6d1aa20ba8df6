import asyncio

import pytest

from upnext_engine import NoItemsAvailable, PlaybackCoordinator, RoomNotFound, SnapshotReader
from upnext_models.room import PlaybackState
from upnext_models.vote import VoteDirection

pytestmark = pytest.mark.asyncio


async def test_idle_room_snapshot(redis_client, room):
    snapshot = await SnapshotReader(redis_client, poll_interval_ms=2500, clock=lambda: 42).room_snapshot(room.room_id)
    assert snapshot.state == PlaybackState.IDLE
    assert snapshot.active is None
    assert snapshot.queue == []
    assert snapshot.voter_view == {}
    assert snapshot.generated_at == 42
    assert snapshot.poll_interval_ms == 2500


async def test_snapshot_contains_ranked_queue_and_voter_view(redis_client, ledger, room, submit):
    a = await submit(room.room_id, "A", created_at=0)
    b = await submit(room.room_id, "B", created_at=1)
    c = await submit(room.room_id, "C", created_at=2)
    await ledger.cast_vote(room.room_id, c.item_id, "alice", "up")
    await ledger.cast_vote(room.room_id, a.item_id, "alice", "down")
    await ledger.cast_vote(room.room_id, b.item_id, "bob", "up")
    await ledger.cast_vote(room.room_id, b.item_id, "carol", "up")

    snapshot = await SnapshotReader(redis_client).room_snapshot(room.room_id, "alice")

    assert [item.extracted_id for item in snapshot.queue] == ["B", "C", "A"]
    assert [item.score for item in snapshot.queue] == [2, 1, -1]
    assert snapshot.voter_view == {a.item_id: True, b.item_id: False, c.item_id: True}
    assert snapshot.my_votes == {a.item_id: VoteDirection.DOWN, c.item_id: VoteDirection.UP}


async def test_active_item_never_in_queue(redis_client, ledger, room, submit):
    a = await submit(room.room_id, "A", created_at=0)
    await submit(room.room_id, "B", created_at=1)
    await PlaybackCoordinator(redis_client).advance(room.room_id)
    await ledger.cast_vote(room.room_id, a.item_id, "alice", "up")

    snapshot = await SnapshotReader(redis_client).room_snapshot(room.room_id, "alice")

    assert snapshot.state == PlaybackState.PLAYING
    assert snapshot.active.item_id == a.item_id
    assert snapshot.active.score == 1
    assert a.item_id not in {item.item_id for item in snapshot.queue}
    assert snapshot.voter_view[a.item_id] is True
    assert snapshot.version == 1


async def test_anonymous_snapshot_has_no_votes(redis_client, ledger, room, submit):
    a = await submit(room.room_id, "A")
    await ledger.cast_vote(room.room_id, a.item_id, "alice", "up")
    snapshot = await SnapshotReader(redis_client).room_snapshot(room.room_id)
    assert snapshot.voter_view == {a.item_id: False}
    assert snapshot.my_votes == {}


async def test_snapshots_during_advances_are_never_torn(redis_client, room, submit):
    items = [await submit(room.room_id, f"v{n}", created_at=n) for n in range(8)]
    coordinator = PlaybackCoordinator(redis_client)
    reader = SnapshotReader(redis_client)

    async def advance_all():
        for _ in range(len(items) + 1):
            try:
                await coordinator.advance(room.room_id)
            except NoItemsAvailable:
                pass

    async def poll():
        seen = []
        for _ in range(20):
            seen.append(await reader.room_snapshot(room.room_id))
            await asyncio.sleep(0)
        return seen

    _, *polls = await asyncio.gather(advance_all(), poll(), poll())

    for snapshots in polls:
        versions = [snapshot.version for snapshot in snapshots]
        assert versions == sorted(versions)
        for snapshot in snapshots:
            queued = {item.item_id for item in snapshot.queue}
            if snapshot.active is not None:
                assert snapshot.active.item_id not in queued
            # pending shrinks by exactly one per advance until the queue is empty
            expected_pending = max(0, len(items) - snapshot.version)
            assert len(queued) == expected_pending


async def test_unknown_room(redis_client):
    with pytest.raises(RoomNotFound):
        await SnapshotReader(redis_client).room_snapshot("nobody")
