import os
from functools import lru_cache
from typing import Any

import redis.asyncio as redis

ITEM_KEY_PREFIX = "upnext:item:"


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    host = os.getenv("REDIS_HOST", "")
    port = int(os.getenv("REDIS_PORT", "6379"))
    if not host:
        raise ValueError("REDIS_HOST is required")
    return redis.Redis(host=host, port=port, decode_responses=True)


def room_key(room_id: str) -> str:
    return f"upnext:room:{room_id}"


def room_pending_key(room_id: str) -> str:
    return f"upnext:room:{room_id}:pending"


def room_played_key(room_id: str) -> str:
    return f"upnext:room:{room_id}:played"


def advance_token_key(room_id: str, token: str) -> str:
    return f"upnext:room:{room_id}:advance:{token}"


def item_key(item_id: str) -> str:
    return f"{ITEM_KEY_PREFIX}{item_id}"


def item_votes_key(item_id: str) -> str:
    return f"{ITEM_KEY_PREFIX}{item_id}:votes"


# Shared by every script that reports a score: up minus down over the item's vote hash.
NET_SCORE_LUA = """
local function net_score(votes_key)
  local score = 0
  for _, direction in ipairs(redis.call("HVALS", votes_key)) do
    if direction == "up" then
      score = score + 1
    elseif direction == "down" then
      score = score - 1
    end
  end
  return score
end
"""


CREATE_ROOM_LUA = """
if redis.call("EXISTS", KEYS[1]) == 1 then
  return 0
end
redis.call("HSET", KEYS[1], "roomId", ARGV[1], "createdAt", ARGV[2], "active", "", "version", "0", "seq", "0")
return 1
"""


async def create_room(client: redis.Redis, room_id: str, created_at_ms: int) -> bool:
    result = await client.eval(CREATE_ROOM_LUA, 1, room_key(room_id), room_id, created_at_ms)  # type: ignore[misc]
    return int(result) == 1


async def get_room(client: redis.Redis, room_id: str) -> dict[str, str] | None:
    data = await client.hgetall(room_key(room_id))  # type: ignore[misc]
    return data or None


CREATE_ITEM_LUA = """
local room_key = KEYS[1]
local pending_key = KEYS[2]
local item_key = KEYS[3]

if redis.call("EXISTS", room_key) == 0 then
  return -1
end

local seq = redis.call("HINCRBY", room_key, "seq", 1)
redis.call("HSET", item_key,
  "itemId", ARGV[1],
  "roomId", ARGV[2],
  "url", ARGV[3],
  "extractedId", ARGV[4],
  "title", ARGV[5],
  "smallImg", ARGV[6],
  "bigImg", ARGV[7],
  "submittedBy", ARGV[8],
  "createdAt", ARGV[9],
  "seq", tostring(seq),
  "state", "pending")
redis.call("ZADD", pending_key, ARGV[9], ARGV[1])
return seq
"""


async def create_item(client: redis.Redis, room_id: str, item_id: str, fields: dict[str, Any]) -> int | None:
    result = await client.eval(
        CREATE_ITEM_LUA,
        3,
        room_key(room_id),
        room_pending_key(room_id),
        item_key(item_id),
        item_id,
        room_id,
        fields["url"],
        fields["extractedId"],
        fields["title"],
        fields.get("smallImg", ""),
        fields.get("bigImg", ""),
        fields.get("submittedBy", ""),
        fields["createdAt"],
    )  # type: ignore[misc]
    seq = int(result)
    if seq < 0:
        return None
    return seq


async def get_item(client: redis.Redis, item_id: str) -> dict[str, str] | None:
    data = await client.hgetall(item_key(item_id))  # type: ignore[misc]
    return data or None


async def get_items(client: redis.Redis, item_ids: list[str]) -> list[dict[str, str]]:
    if not item_ids:
        return []
    pipeline = client.pipeline()
    for item_id in item_ids:
        pipeline.hgetall(item_key(item_id))
    return [data for data in await pipeline.execute() if data]


# Votes are only accepted while the item is pending or active in the given room.
CAST_VOTE_LUA = NET_SCORE_LUA + """
local item_key = KEYS[1]
local votes_key = KEYS[2]

local room_id = redis.call("HGET", item_key, "roomId")
if not room_id or room_id ~= ARGV[1] then
  return {"not_found", 0}
end
local state = redis.call("HGET", item_key, "state")
if state ~= "pending" and state ~= "active" then
  return {"not_found", 0}
end

redis.call("HSET", votes_key, ARGV[2], ARGV[3])
return {"ok", net_score(votes_key)}
"""


WITHDRAW_VOTE_LUA = NET_SCORE_LUA + """
local item_key = KEYS[1]
local votes_key = KEYS[2]

local room_id = redis.call("HGET", item_key, "roomId")
if not room_id or room_id ~= ARGV[1] then
  return {"not_found", 0}
end
local state = redis.call("HGET", item_key, "state")
if state ~= "pending" and state ~= "active" then
  return {"not_found", 0}
end

redis.call("HDEL", votes_key, ARGV[2])
return {"ok", net_score(votes_key)}
"""


async def record_vote_atomic(
    client: redis.Redis,
    room_id: str,
    item_id: str,
    voter_id: str,
    direction: str,
) -> tuple[bool, int]:
    status, score = await client.eval(
        CAST_VOTE_LUA, 2, item_key(item_id), item_votes_key(item_id), room_id, voter_id, direction
    )  # type: ignore[misc]
    return status == "ok", int(score)


async def withdraw_vote_atomic(client: redis.Redis, room_id: str, item_id: str, voter_id: str) -> tuple[bool, int]:
    status, score = await client.eval(
        WITHDRAW_VOTE_LUA, 2, item_key(item_id), item_votes_key(item_id), room_id, voter_id
    )  # type: ignore[misc]
    return status == "ok", int(score)


async def get_item_votes(client: redis.Redis, item_id: str) -> dict[str, str]:
    return await client.hgetall(item_votes_key(item_id))  # type: ignore[misc]


async def get_voter_votes(client: redis.Redis, voter_id: str, item_ids: list[str]) -> dict[str, str]:
    if not item_ids:
        return {}
    pipeline = client.pipeline()
    for item_id in item_ids:
        pipeline.hget(item_votes_key(item_id), voter_id)
    results = await pipeline.execute()
    return {item_id: direction for item_id, direction in zip(item_ids, results) if direction}


ROOM_STATE_LUA = NET_SCORE_LUA + """
local room_key = KEYS[1]
local pending_key = KEYS[2]
local prefix = ARGV[1]
local voter_id = ARGV[2]

if redis.call("EXISTS", room_key) == 0 then
  return {"room_not_found"}
end

local function describe(item_id)
  local votes_key = prefix .. item_id .. ":votes"
  local my_vote = ""
  if voter_id ~= "" then
    my_vote = redis.call("HGET", votes_key, voter_id) or ""
  end
  return {redis.call("HGETALL", prefix .. item_id), net_score(votes_key), my_vote}
end

local version = redis.call("HGET", room_key, "version") or "0"
local active_id = redis.call("HGET", room_key, "active") or ""
local active = {}
if active_id ~= "" then
  active = describe(active_id)
end

local pending = {}
for _, item_id in ipairs(redis.call("ZRANGE", pending_key, 0, -1)) do
  table.insert(pending, describe(item_id))
end

return {"ok", tonumber(version), active, pending}
"""


def _pairs_to_dict(flat: list[Any]) -> dict[str, str]:
    return {str(flat[i]): str(flat[i + 1]) for i in range(0, len(flat) - 1, 2)}


def _described(entry: list[Any]) -> dict[str, Any]:
    fields, score, my_vote = entry
    return {"fields": _pairs_to_dict(fields), "score": int(score), "myVote": my_vote or ""}


async def read_room_state(client: redis.Redis, room_id: str, voter_id: str = "") -> dict[str, Any] | None:
    """Read a room's version, active item and pending items as one atomic instant.

    Each item comes back as ``{"fields": <item hash>, "score": int, "myVote": str}``
    where ``myVote`` is the given voter's direction or an empty string.
    Returns None when the room does not exist.
    """
    result = await client.eval(
        ROOM_STATE_LUA, 2, room_key(room_id), room_pending_key(room_id), ITEM_KEY_PREFIX, voter_id
    )  # type: ignore[misc]
    if result[0] != "ok":
        return None
    _, version, active, pending = result
    return {
        "version": int(version),
        "active": _described(active) if active else None,
        "pending": [_described(entry) for entry in pending],
    }


ADVANCE_COMMIT_LUA = """
local room_key = KEYS[1]
local pending_key = KEYS[2]
local played_key = KEYS[3]
local token_key = KEYS[4]

local expected_version = tonumber(ARGV[1])
local candidate = ARGV[2]
local prefix = ARGV[3]
local now_ms = ARGV[4]
local token_ttl = tonumber(ARGV[5])
local has_token = ARGV[6] == "1"

if has_token then
  local cached = redis.call("GET", token_key)
  if cached then
    return {"replayed", cached, tonumber(redis.call("HGET", room_key, "version") or "0")}
  end
end

if redis.call("EXISTS", room_key) == 0 then
  return {"room_not_found", "", 0}
end

local version = tonumber(redis.call("HGET", room_key, "version") or "0")
if version ~= expected_version then
  return {"conflict", "", version}
end
if candidate ~= "" and not redis.call("ZSCORE", pending_key, candidate) then
  return {"conflict", "", version}
end

local active = redis.call("HGET", room_key, "active") or ""
if active ~= "" then
  redis.call("HSET", prefix .. active, "state", "played", "playedAt", now_ms)
  redis.call("LPUSH", played_key, active)
end

if candidate ~= "" then
  redis.call("ZREM", pending_key, candidate)
  redis.call("HSET", prefix .. candidate, "state", "active", "activatedAt", now_ms)
end

version = version + 1
redis.call("HSET", room_key, "active", candidate, "version", tostring(version))

if has_token then
  redis.call("SET", token_key, candidate, "EX", token_ttl)
end
return {"ok", candidate, version}
"""


async def commit_advance_atomic(
    client: redis.Redis,
    room_id: str,
    expected_version: int,
    candidate_id: str | None,
    now_ms: int,
    token: str | None = None,
    token_ttl_seconds: int = 60,
) -> tuple[str, str, int]:
    """Demote the active item and promote ``candidate_id`` if the room is still at ``expected_version``.

    Returns ``(status, item_id, version)`` where status is one of ``ok``,
    ``replayed``, ``conflict`` or ``room_not_found``. An empty item id means
    the room went (or already was) idle.
    """
    status, item_id, version = await client.eval(
        ADVANCE_COMMIT_LUA,
        4,
        room_key(room_id),
        room_pending_key(room_id),
        room_played_key(room_id),
        advance_token_key(room_id, token or "-"),
        expected_version,
        candidate_id or "",
        ITEM_KEY_PREFIX,
        now_ms,
        max(1, int(token_ttl_seconds)),
        "1" if token else "0",
    )  # type: ignore[misc]
    return status, item_id or "", int(version)


async def get_advance_result(client: redis.Redis, room_id: str, token: str) -> str | None:
    return await client.get(advance_token_key(room_id, token))


async def get_played_ids(client: redis.Redis, room_id: str, limit: int = 50) -> list[str]:
    if limit <= 0:
        return []
    return await client.lrange(room_played_key(room_id), 0, limit - 1)  # type: ignore[misc]
