import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import HTTPConnection
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from studyswipe.conversation import Conversation, fetch_messages, send_message
from studyswipe.database import MongoStore
from studyswipe.errors import (
    ConflictError,
    NotParticipant,
    ReferenceGone,
    StudySwipeError,
    TransientIOError,
    ValidationError,
)
from studyswipe.feed import next_candidates
from studyswipe.inbox import count_unread, list_matches
from studyswipe.logger import logger
from studyswipe.matching import get_match
from studyswipe.profiles import COMMON_SUBJECTS, create_profile, get_profile, update_profile
from studyswipe.schemas import Direction
from studyswipe.settings import get_settings
from studyswipe.store import Store
from studyswipe.swipes import swipe
from studyswipe.unmatch import unmatch


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = MongoStore.from_settings()
    try:
        await store.ensure_indexes()
    except TransientIOError as e:
        logger.warning(f"Could not ensure indexes at startup: {e}")
    app.state.store = store
    yield
    await store.close()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

def get_store(connection: HTTPConnection) -> Store:
    return connection.app.state.store


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    # Identity is asserted by the upstream auth proxy
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def _status_for(exc: StudySwipeError) -> int:
    if isinstance(exc, NotParticipant):
        return 403
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, ReferenceGone):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, TransientIOError):
        return 503
    return 500


@app.exception_handler(StudySwipeError)
async def handle_domain_error(request, exc: StudySwipeError):
    status = _status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/")
def read_root():
    return {"message": "StudySwipe API running"}


@app.get("/test")
async def test_database(store: Store = Depends(get_store)):
    settings = get_settings()
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if not await store.ping():
        return response
    response["database"] = "✅ Available"
    response["connection_status"] = "Connected"
    if isinstance(store, MongoStore):
        response["database_name"] = settings.database_name
        try:
            response["collections"] = (await store.list_collection_names())[:10]
            response["database"] = "✅ Connected & Working"
        except TransientIOError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


# Profiles

class CreateProfile(BaseModel):
    name: str
    school: Optional[str] = None
    major: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    subjects: List[str] = []


class UpdateProfile(BaseModel):
    name: Optional[str] = None
    school: Optional[str] = None
    major: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    subjects: Optional[List[str]] = None


@app.get("/api/subjects", response_model=List[str])
def list_subjects():
    return COMMON_SUBJECTS


@app.post("/api/profiles", response_model=dict)
async def setup_profile(
    payload: CreateProfile,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    profile = await create_profile(store, user_id, **payload.model_dump())
    return profile.model_dump(mode="json")


@app.get("/api/profiles/{profile_id}", response_model=dict)
async def read_profile(
    profile_id: str,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    profile = await get_profile(store, profile_id)
    return profile.model_dump(mode="json")


@app.patch("/api/profiles/{profile_id}", response_model=dict)
async def edit_profile(
    profile_id: str,
    payload: UpdateProfile,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    profile = await update_profile(store, user_id, profile_id, **payload.model_dump(exclude_unset=True))
    return profile.model_dump(mode="json")


# Feed and swipes

@app.get("/api/feed", response_model=List[dict])
async def feed(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    profiles = await next_candidates(store, user_id, limit=limit)
    return [p.model_dump(mode="json") for p in profiles]


class SwipePayload(BaseModel):
    target_id: str
    direction: Direction


@app.post("/api/swipes", response_model=dict)
async def swipe_profile(
    payload: SwipePayload,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    outcome = await swipe(store, user_id, payload.target_id, payload.direction)
    return {
        "swipe": outcome.swipe.model_dump(mode="json") if outcome.swipe else None,
        "match": outcome.match.model_dump(mode="json") if outcome.match else None,
        "duplicate": outcome.duplicate,
    }


# Matches

@app.get("/api/matches", response_model=List[dict])
async def get_matches(user_id: str = Depends(current_user), store: Store = Depends(get_store)):
    return [summary.to_dict() for summary in await list_matches(store, user_id)]


@app.get("/api/matches/unread", response_model=dict)
async def get_unread(user_id: str = Depends(current_user), store: Store = Depends(get_store)):
    return {"count": await count_unread(store, user_id)}


@app.delete("/api/matches/{match_id}", response_model=dict)
async def delete_match(
    match_id: str,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    result = await unmatch(store, match_id, user_id)
    return {
        "match_id": result.match_id,
        "messages_deleted": result.messages_deleted,
        "swipes_cleared": result.swipes_cleared,
    }


# Messages

class MessagePayload(BaseModel):
    match_id: str
    text: str


@app.post("/api/messages", response_model=dict)
async def post_message(
    payload: MessagePayload,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    message = await send_message(store, payload.match_id, user_id, payload.text)
    return message.model_dump(mode="json")


@app.get("/api/messages/{match_id}", response_model=List[dict])
async def list_messages(
    match_id: str,
    since: Optional[datetime] = None,
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    match = await get_match(store, match_id)
    if match is None:
        raise ReferenceGone("Match not found")
    if not match.has_participant(user_id):
        raise NotParticipant("Not part of this match")
    return [m.model_dump(mode="json") for m in await fetch_messages(store, match_id, since=since)]


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        message = await outbox.get()
        if message is None:
            await websocket.send_json({"type": "gone"})
            await websocket.close()
            return
        await websocket.send_json({"type": "message", "message": message.model_dump(mode="json")})


@app.websocket("/ws/matches/{match_id}")
async def chat_socket(
    websocket: WebSocket,
    match_id: str,
    user_id: str = Query(...),
    store: Store = Depends(get_store),
):
    outbox: asyncio.Queue = asyncio.Queue()
    # Every merged message is streamed, including the viewer's own from other sessions
    conversation = Conversation(
        store,
        match_id,
        user_id,
        on_merged=outbox.put_nowait,
        on_gone=lambda: outbox.put_nowait(None),
    )
    try:
        history = await conversation.load()
    except StudySwipeError as e:
        await websocket.close(code=4000 + _status_for(e), reason=str(e))
        return

    await websocket.accept()
    await websocket.send_json({"type": "history", "messages": [m.model_dump(mode="json") for m in history]})

    async with conversation:
        pump = asyncio.create_task(_pump(websocket, outbox))
        try:
            while True:
                data = await websocket.receive_json()
                text = data.get("text", "") if isinstance(data, dict) else ""
                try:
                    await conversation.send(str(text))
                except StudySwipeError as e:
                    await websocket.send_json({"type": "error", "detail": str(e)})
        except WebSocketDisconnect:
            logger.debug(f"{user_id} left the chat for match {match_id}")
        finally:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Chat stream for {user_id} on match {match_id} ended with {e!r}")


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.app_host, port=settings.port)
