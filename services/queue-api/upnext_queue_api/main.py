import hmac
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, NoReturn, Optional

import redis.asyncio as redis
from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Response, status
from pydantic import BaseModel

from upnext_auth.session import Identity, identity_from_token, issue_session_token
from upnext_engine import (
    Conflict,
    EngineError,
    Forbidden,
    InvalidInput,
    ItemStore,
    NoItemsAvailable,
    NotFound,
    PlaybackCoordinator,
    RoomLocks,
    SnapshotReader,
    VoteLedger,
)
from upnext_models.item import Item, ItemCreate
from upnext_models.room import AdvanceIn, Room, RoomOut, RoomSnapshot
from upnext_models.vote import VoteIn, VoteOut
from upnext_redis.client import get_redis_client

from upnext_queue_api.config import settings
from upnext_queue_api.intake import MetadataFetcher, SubmissionIntake

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_room_locks = RoomLocks()
_fetcher = MetadataFetcher(timeout=settings.oembed_timeout_seconds, enabled=settings.oembed_enabled)
_intake = SubmissionIntake(_fetcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await _fetcher.close()


app = FastAPI(title="UpNext Queue API", version="1.0.0", lifespan=lifespan)


class QueueError(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


class SessionCreate(BaseModel):
    creatorId: Optional[str] = None
    signupKey: Optional[str] = None


def _raise_engine_error(exc: EngineError) -> NoReturn:
    if isinstance(exc, NotFound):
        raise QueueError(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, InvalidInput):
        raise QueueError(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, Forbidden):
        raise QueueError(status.HTTP_403_FORBIDDEN, str(exc))
    if isinstance(exc, Conflict):
        raise QueueError(status.HTTP_409_CONFLICT, str(exc))
    raise QueueError(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def _store_unavailable(message: str, **extra: Any) -> NoReturn:
    logger.exception(message, extra=extra)
    raise QueueError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Redis unavailable")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_redis() -> redis.Redis:
    try:
        return get_redis_client()
    except Exception:
        _store_unavailable("Redis client unavailable")


def get_intake() -> SubmissionIntake:
    return _intake


def get_room_locks() -> RoomLocks:
    return _room_locks


def optional_identity(
    session_cookie: Optional[str] = Cookie(default=None, alias=settings.session_cookie_name),
) -> Optional[Identity]:
    if not session_cookie:
        return None
    try:
        return identity_from_token(session_cookie, settings.jwt_secret)
    except Exception:
        logger.warning("Invalid session cookie")
        raise QueueError(status.HTTP_401_UNAUTHORIZED, "Invalid session cookie")


def require_identity(identity: Optional[Identity] = Depends(optional_identity)) -> Identity:
    if identity is None:
        logger.warning("Missing session cookie")
        raise QueueError(status.HTTP_401_UNAUTHORIZED, "Missing session cookie")
    return identity


def _require_owner(identity: Identity, room_id: str) -> None:
    if not identity.owns_room(room_id):
        logger.warning("Refused non-owner", extra={"roomId": room_id, "sessionId": identity.voter_id})
        raise Forbidden(f"Only the creator of room {room_id} can do this")


def _room_out(room: Room) -> RoomOut:
    return RoomOut(
        room_id=room.room_id,
        created_at=room.created_at,
        state=room.state,
        version=room.version,
        share_path=f"/creator/{room.room_id}",
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@app.post("/session")
async def create_session(response: Response, payload: Optional[SessionCreate] = None) -> Dict[str, Any]:
    creator_id = payload.creatorId if payload else None
    if creator_id:
        # Creator sessions are refused outright until a signup key is configured.
        if not settings.creator_signup_key:
            logger.warning("Creator session refused, CREATOR_SIGNUP_KEY unset", extra={"creatorId": creator_id})
            raise QueueError(status.HTTP_403_FORBIDDEN, "Creator sessions are disabled")
        if not hmac.compare_digest(payload.signupKey or "", settings.creator_signup_key):
            logger.warning("Creator session refused", extra={"creatorId": creator_id})
            raise QueueError(status.HTTP_403_FORBIDDEN, "Invalid signup key")

    try:
        token, meta = issue_session_token(settings.jwt_secret, settings.session_ttl_seconds, creator_id=creator_id)
    except ValueError:
        logger.error("Missing SESSION_JWT_SECRET")
        raise QueueError(status.HTTP_500_INTERNAL_SERVER_ERROR, "SESSION_JWT_SECRET is required")
    logger.info("Issued session", extra={"sessionId": meta["session_id"], "creatorId": creator_id})

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.cookie_max_age(),
    )

    return {
        "sessionId": meta["session_id"],
        "creatorId": creator_id,
        "expiresAt": meta["expires_at"].isoformat(),
    }


@app.get("/me")
async def whoami(identity: Identity = Depends(require_identity)) -> Dict[str, Optional[str]]:
    return {"sessionId": identity.voter_id, "creatorId": identity.creator_id}


# ---------------------------------------------------------------------------
# Rooms and items
# ---------------------------------------------------------------------------


@app.post("/rooms", response_model=RoomOut)
async def create_room(
    identity: Identity = Depends(require_identity),
    client: redis.Redis = Depends(get_redis),
) -> RoomOut:
    try:
        if not identity.creator_id:
            raise Forbidden("Creator session required")
        room = await ItemStore(client).create_room(identity.creator_id)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to create room", roomId=identity.creator_id)
    return _room_out(room)


@app.get("/rooms/{room_id}", response_model=RoomOut)
async def get_room(room_id: str, client: redis.Redis = Depends(get_redis)) -> RoomOut:
    try:
        room = await ItemStore(client).get_room(room_id)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to load room", roomId=room_id)
    return _room_out(room)


@app.post("/rooms/{room_id}/items", response_model=Item)
async def submit_item(
    room_id: str,
    payload: ItemCreate,
    identity: Identity = Depends(require_identity),
    client: redis.Redis = Depends(get_redis),
    intake: SubmissionIntake = Depends(get_intake),
) -> Item:
    try:
        submission = await intake.normalize(payload.url)
    except InvalidInput as exc:
        logger.info("Submission rejected", extra={"roomId": room_id, "reason": str(exc)})
        _raise_engine_error(exc)

    try:
        return await ItemStore(client).create_item(
            room_id,
            url=submission.url,
            extracted_id=submission.extracted_id,
            metadata=submission.metadata,
            submitted_by=identity.voter_id,
        )
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to store item", roomId=room_id)


@app.get("/rooms/{room_id}/snapshot", response_model=RoomSnapshot)
async def room_snapshot(
    room_id: str,
    identity: Optional[Identity] = Depends(optional_identity),
    client: redis.Redis = Depends(get_redis),
) -> RoomSnapshot:
    voter_id = identity.voter_id if identity else ""
    try:
        return await SnapshotReader(client, poll_interval_ms=settings.poll_interval_ms).room_snapshot(room_id, voter_id)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to build snapshot", roomId=room_id)


@app.get("/rooms/{room_id}/history", response_model=List[Item])
async def room_history(room_id: str, client: redis.Redis = Depends(get_redis)) -> List[Item]:
    try:
        return await ItemStore(client).played_history(room_id, settings.history_limit)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to load history", roomId=room_id)


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


@app.post("/rooms/{room_id}/items/{item_id}/vote", response_model=VoteOut)
async def cast_vote(
    room_id: str,
    item_id: str,
    payload: VoteIn,
    identity: Identity = Depends(require_identity),
    client: redis.Redis = Depends(get_redis),
) -> VoteOut:
    try:
        score = await VoteLedger(client).cast_vote(room_id, item_id, identity.voter_id, payload.direction)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to record vote", roomId=room_id, itemId=item_id)
    return VoteOut(item_id=item_id, score=score)


@app.delete("/rooms/{room_id}/items/{item_id}/vote", response_model=VoteOut)
async def withdraw_vote(
    room_id: str,
    item_id: str,
    identity: Identity = Depends(require_identity),
    client: redis.Redis = Depends(get_redis),
) -> VoteOut:
    try:
        score = await VoteLedger(client).withdraw_vote(room_id, item_id, identity.voter_id)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to withdraw vote", roomId=room_id, itemId=item_id)
    return VoteOut(item_id=item_id, score=score)


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


def _coordinator(client: redis.Redis, locks: RoomLocks) -> PlaybackCoordinator:
    return PlaybackCoordinator(
        client,
        locks=locks,
        token_ttl_seconds=settings.advance_token_ttl_seconds,
        lock_timeout_seconds=settings.advance_lock_timeout_seconds,
    )


@app.get("/rooms/{room_id}/current")
async def current_item(
    room_id: str,
    client: redis.Redis = Depends(get_redis),
    locks: RoomLocks = Depends(get_room_locks),
) -> Dict[str, Any]:
    try:
        item = await _coordinator(client, locks).current_active(room_id)
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to load active item", roomId=room_id)
    return {"state": "playing" if item else "idle", "item": item.model_dump(mode="json") if item else None}


@app.post("/rooms/{room_id}/advance")
async def advance(
    room_id: str,
    payload: Optional[AdvanceIn] = None,
    idempotency_key: Optional[str] = Header(default=None),
    identity: Identity = Depends(require_identity),
    client: redis.Redis = Depends(get_redis),
    locks: RoomLocks = Depends(get_room_locks),
) -> Dict[str, Any]:
    token = (payload.token if payload else None) or idempotency_key
    try:
        _require_owner(identity, room_id)
        result = await _coordinator(client, locks).advance(room_id, token=token)
    except NoItemsAvailable:
        return {"status": "idle", "reason": "no_items_available", "roomId": room_id, "item": None}
    except EngineError as exc:
        _raise_engine_error(exc)
    except Exception:
        _store_unavailable("Failed to advance room", roomId=room_id)

    return {
        "status": "ok",
        "roomId": room_id,
        "item": result.item.model_dump(mode="json"),
        "version": result.version,
        "replayed": result.replayed,
    }


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "healthy"}
