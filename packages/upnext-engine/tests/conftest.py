import fakeredis
import pytest_asyncio

from upnext_engine import ItemStore, VoteLedger
from upnext_models.item import DisplayMetadata


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def store(redis_client):
    return ItemStore(redis_client)


@pytest_asyncio.fixture
async def ledger(redis_client):
    return VoteLedger(redis_client)


@pytest_asyncio.fixture
async def room(store):
    return await store.create_room("creator-1")


@pytest_asyncio.fixture
async def submit(store):
    async def _submit(room_id, extracted_id, created_at=None, submitted_by=""):
        return await store.create_item(
            room_id,
            url=f"https://www.youtube.com/watch?v={extracted_id}",
            extracted_id=extracted_id,
            metadata=DisplayMetadata(title=f"Video {extracted_id}"),
            submitted_by=submitted_by,
            created_at=created_at,
        )

    return _submit


@pytest_asyncio.fixture
async def upvote(ledger):
    async def _upvote(room_id, item, count, prefix="voter"):
        for n in range(count):
            await ledger.cast_vote(room_id, item.item_id, f"{prefix}-{n}", "up")

    return _upvote
