import logging
from contextlib import asynccontextmanager

import socketio
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from config import settings
from content_store import SqlContentStore
from coordinator import RoomCoordinator
from database import SessionLocal
from exceptions import LookupFailure
from logging_config import setup_logging
from migrate import migrate
from schemas import (
    ChatMessagePayload,
    CodeUpdatePayload,
    LeaveRoomPayload,
    parse_join_payload,
)
from transport import SocketIOTransport

setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting code room server...")
    migrate()
    logger.info(
        f"Mentor policy: {settings.mentor_policy.value}, "
        f"student count tracking: {settings.track_student_count}"
    )
    yield
    logger.info("Code room server shut down")


# ---- Socket.IO Server ----
# async_handlers=False keeps each connection's events in arrival order
sio = socketio.AsyncServer(
    cors_allowed_origins="*" if "*" in settings.cors_origins else settings.cors_origins,
    async_mode="asgi",
    async_handlers=False,
)

app = FastAPI(title="Code Room Server", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

sio_app = socketio.ASGIApp(sio, other_asgi_app=app)

coordinator = RoomCoordinator(
    transport=SocketIOTransport(sio),
    content_store=SqlContentStore(SessionLocal),
    mentor_policy=settings.mentor_policy,
    track_student_count=settings.track_student_count,
)


async def reject_payload(sid, event, error):
    logger.warning(f"Malformed {event} payload from {sid}: {error}")
    await sio.emit("room-error", {"message": f"Malformed {event} payload"}, to=sid)


# ---------------- SOCKET EVENTS ----------------

@sio.event
async def connect(sid, environ):
    logger.info(f"User connected: {sid}")


@sio.on("join-room")
async def join_room(sid, data):
    try:
        payload = parse_join_payload(data)
    except ValidationError as e:
        await reject_payload(sid, "join-room", e)
        return
    await coordinator.join(sid, payload.roomId)


@sio.on("code-update")
async def code_update(sid, data):
    try:
        payload = CodeUpdatePayload.model_validate(data)
    except ValidationError as e:
        await reject_payload(sid, "code-update", e)
        return
    await coordinator.code_update(sid, payload.roomId, payload.code)


@sio.on("chat-message")
async def chat_message(sid, data):
    try:
        payload = ChatMessagePayload.model_validate(data)
    except ValidationError as e:
        await reject_payload(sid, "chat-message", e)
        return
    await coordinator.chat_message(sid, payload.roomId, payload.sender, payload.message)


@sio.on("leave-room")
async def leave_room(sid, data):
    try:
        payload = LeaveRoomPayload.model_validate(data)
    except ValidationError as e:
        await reject_payload(sid, "leave-room", e)
        return
    await coordinator.leave(sid, payload.roomId)


@sio.event
async def disconnect(sid, *args):
    logger.info(f"User disconnected: {sid}")
    await coordinator.disconnect(sid)


# ---------------- REST API ENDPOINTS ----------------

@app.get("/", response_class=PlainTextResponse)
async def health():
    return "Server is running"


@app.get("/api/codeblocks")
async def list_code_blocks():
    """List all code blocks"""
    try:
        records = await coordinator.content_store.list_all()
    except LookupFailure as e:
        logger.error(e.message)
        raise HTTPException(status_code=500, detail="Error fetching code blocks")
    return [record.model_dump() for record in records]


@app.get("/api/codeblocks/{block_id}")
async def get_code_block(block_id: str):
    """Get a single code block"""
    try:
        record = await coordinator.content_store.find_by_id(block_id)
    except LookupFailure as e:
        logger.error(e.message)
        raise HTTPException(status_code=500, detail="Error fetching code block")
    if record is None:
        raise HTTPException(status_code=404, detail="Code block not found")
    return record.model_dump()


@app.get("/api/rooms")
async def list_rooms():
    """List live rooms"""
    return coordinator.snapshots()


@app.get("/api/rooms/{room_id}")
async def get_room(room_id: str):
    """Get live room membership"""
    snapshot = coordinator.snapshot(room_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return snapshot


if __name__ == "__main__":
    uvicorn.run(sio_app, host=settings.host, port=settings.port)
