"""
Room coordinator: who is in which room, with which role.

All room table mutations happen on the event loop between awaits, so no
locks are needed. Anything that awaits (transport sends, content store
lookups) must re-check the table afterwards; a room may be gone by then.
"""

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from config import MentorPolicy
from content_store import ContentStore
from exceptions import (
    InvalidRoomKey,
    LookupFailure,
    MembershipInconsistency,
    NotAMember,
    TransportFailure,
)
from schemas import ChatMessage
from transport import Transport

logger = logging.getLogger(__name__)


class Role(str, Enum):
    MENTOR = "mentor"
    STUDENT = "student"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass
class Participant:
    connection_id: str
    role: Role
    room_key: str
    joined_seq: int


@dataclass
class Room:
    key: str
    # connection id -> participant, in join order
    participants: Dict[str, Participant] = field(default_factory=dict)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self.participants

    def __len__(self) -> int:
        return len(self.participants)

    def mentor(self) -> Optional[Participant]:
        for participant in self.participants.values():
            if participant.role is Role.MENTOR:
                return participant
        return None

    def student_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.role is Role.STUDENT)

    def earliest(self) -> Optional[Participant]:
        return min(self.participants.values(), key=lambda p: p.joined_seq, default=None)

    def connection_ids(self) -> List[str]:
        return list(self.participants)


class RoomCoordinator:
    """Tracks room membership and relays code and chat between participants."""

    def __init__(
        self,
        transport: Transport,
        content_store: ContentStore,
        mentor_policy: MentorPolicy = MentorPolicy.TEARDOWN,
        track_student_count: bool = True,
    ):
        self.transport = transport
        self.content_store = content_store
        self.mentor_policy = MentorPolicy(mentor_policy)
        self.track_student_count = track_student_count

        # room key -> Room
        self.rooms: Dict[str, Room] = {}
        # connection id -> room key; a connection is in at most one room
        self.memberships: Dict[str, str] = {}
        self._join_seq = itertools.count()

    # ---------------- ROOM LIFECYCLE ----------------

    def ensure_room(self, room_key: str) -> Room:
        room = self.rooms.get(room_key)
        if room is None:
            room = Room(key=room_key)
            self.rooms[room_key] = room
            logger.info(f"Room {room_key} created")
        return room

    def destroy_if_empty(self, room_key: str) -> bool:
        room = self.rooms.get(room_key)
        if room is not None and not room.participants:
            del self.rooms[room_key]
            logger.info(f"Room {room_key} removed (empty)")
            return True
        return False

    def get_room(self, room_key: str) -> Optional[Room]:
        return self.rooms.get(room_key)

    def room_of(self, connection_id: str) -> Optional[str]:
        return self.memberships.get(connection_id)

    def snapshot(self, room_key: str) -> Optional[Dict[str, Any]]:
        """Plain-data view of a room for the HTTP endpoints"""
        room = self.rooms.get(room_key)
        if room is None:
            return None
        mentor = room.mentor()
        return {
            "room_id": room.key,
            "mentor": mentor.connection_id if mentor else None,
            "student_count": room.student_count(),
            "participants": [
                {"connection_id": p.connection_id, "role": p.role.value}
                for p in room.participants.values()
            ],
        }

    def snapshots(self) -> List[Dict[str, Any]]:
        return [self.snapshot(key) for key in list(self.rooms)]

    # ---------------- OUTBOUND ----------------

    async def _send(self, connection_id: str, event: str, data: Any = None) -> bool:
        try:
            await self.transport.send(connection_id, event, data)
            return True
        except TransportFailure as e:
            logger.warning(f"Dropping {event} for {connection_id}: {e.message}")
            return False

    async def _send_all(self, connection_ids: Iterable[str], event: str, data: Any = None) -> int:
        delivered = 0
        for connection_id in connection_ids:
            if await self._send(connection_id, event, data):
                delivered += 1
        return delivered

    async def _multicast(self, room: Room, event: str, data: Any = None, exclude: Iterable[str] = ()) -> int:
        """Send an event to every member of a room except the excluded connections."""
        excluded = set(exclude)
        # Copy first; the room may change while we await sends
        targets = [cid for cid in room.connection_ids() if cid not in excluded]
        delivered = await self._send_all(targets, event, data)
        logger.debug(f"{event} delivered to {delivered}/{len(targets)} connections in room {room.key}")
        return delivered

    async def _broadcast_student_count(self, room: Room):
        if self.track_student_count:
            await self._multicast(room, "update-student-count", room.student_count())

    async def _reject(self, connection_id: str, error: Exception):
        logger.warning(str(error))
        await self._send(connection_id, "room-error", {"message": str(error)})

    def _require_member(self, connection_id: str, room_key: str) -> Participant:
        room = self.rooms.get(room_key)
        if room is None or connection_id not in room:
            raise NotAMember(connection_id, room_key)
        return room.participants[connection_id]

    # ---------------- INBOUND EVENTS ----------------

    async def join(self, connection_id: str, room_key: str) -> Optional[Role]:
        if not isinstance(room_key, str) or not room_key:
            await self._reject(connection_id, InvalidRoomKey(f"Invalid room key: {room_key!r}"))
            return None

        current = self.memberships.get(connection_id)
        if current == room_key:
            logger.info(f"Connection {connection_id} re-joined room {room_key}; ignoring")
            return self.rooms[room_key].participants[connection_id].role
        if current is not None:
            logger.info(f"Connection {connection_id} moving from room {current} to {room_key}")
            await self._depart(connection_id, leave_group=True)

        room = self.ensure_room(room_key)
        role = Role.STUDENT if room.mentor() else Role.MENTOR
        room.participants[connection_id] = Participant(
            connection_id=connection_id,
            role=role,
            room_key=room_key,
            joined_seq=next(self._join_seq),
        )
        self.memberships[connection_id] = room_key
        logger.info(f"Connection {connection_id} joined room {room_key} as {role.value}")

        try:
            await self.transport.enter_group(connection_id, room_key)
        except TransportFailure as e:
            logger.warning(e.message)

        await self._send(connection_id, "role-assigned", role.value)
        # The joiner may have been torn down while we awaited
        room = self.rooms.get(room_key)
        if room is not None:
            await self._broadcast_student_count(room)
        return role

    async def code_update(self, connection_id: str, room_key: str, code: str):
        try:
            self._require_member(connection_id, room_key)
        except NotAMember as e:
            await self._reject(connection_id, e)
            return

        await self._multicast(self.rooms[room_key], "receive-code", code, exclude=[connection_id])
        await self._check_solution(connection_id, room_key, code)

    async def _check_solution(self, connection_id: str, room_key: str, code: str) -> bool:
        try:
            record = await self.content_store.find_by_id(room_key)
        except LookupFailure as e:
            logger.error(f"Solution check for room {room_key} failed: {e.message}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error checking solution for room {room_key}: {e}")
            return False

        if record is None:
            logger.debug(f"No code block for room {room_key}; skipping solution check")
            return False

        # Room or sender may have gone while the lookup was in flight
        room = self.rooms.get(room_key)
        if room is None or connection_id not in room:
            logger.debug(f"Discarding solution check for {connection_id} in room {room_key}")
            return False

        if record.solution.strip() != code.strip():
            return False

        logger.info(f"Connection {connection_id} matched the solution in room {room_key}")
        await self._send(connection_id, "solution-matched", True)
        return True

    async def chat_message(self, connection_id: str, room_key: str, sender: Optional[str], text: str):
        try:
            participant = self._require_member(connection_id, room_key)
        except NotAMember as e:
            await self._reject(connection_id, e)
            return

        message = ChatMessage(sender=sender or participant.role.label, text=text)
        await self._multicast(
            self.rooms[room_key],
            "receive-message",
            {"sender": message.sender, "message": message.text},
            exclude=[connection_id],
        )

    async def leave(self, connection_id: str, room_key: str):
        try:
            self._require_member(connection_id, room_key)
        except NotAMember as e:
            await self._reject(connection_id, e)
            return
        await self._depart(connection_id, leave_group=True)

    async def disconnect(self, connection_id: str):
        if connection_id not in self.memberships:
            logger.debug(f"Disconnect for unknown connection {connection_id}; nothing to do")
            return
        # The transport drops a closed connection from its groups by itself
        await self._depart(connection_id, leave_group=False)

    # ---------------- DEPARTURE ----------------

    async def _depart(self, connection_id: str, leave_group: bool):
        room_key = self.memberships.pop(connection_id, None)
        room = self.rooms.get(room_key) if room_key is not None else None
        if room is None or connection_id not in room:
            logger.warning(str(MembershipInconsistency(
                f"Connection {connection_id} has no participant entry in room {room_key}"
            )))
            return

        # Table changes for the whole departure happen before the first await
        participant = room.participants.pop(connection_id)
        mentor_left = participant.role is Role.MENTOR and bool(room.participants)
        logger.info(f"Connection {connection_id} ({participant.role.value}) left room {room_key}")

        successor = None
        lobby_bound: List[str] = []
        student_count = room.student_count()
        if mentor_left and self.mentor_policy is MentorPolicy.PROMOTE:
            successor = self._promote(room)
        elif mentor_left:
            lobby_bound = self._forget_room(room)
        else:
            self.destroy_if_empty(room_key)

        if leave_group:
            try:
                await self.transport.leave_group(connection_id, room_key)
            except TransportFailure as e:
                logger.warning(e.message)

        if successor is not None:
            await self._send(successor.connection_id, "role-assigned", Role.MENTOR.value)

        if lobby_bound:
            if self.track_student_count:
                await self._send_all(lobby_bound, "update-student-count", student_count)
            await self._redirect_to_lobby(room_key, lobby_bound)
        else:
            await self._broadcast_student_count(room)

    def _promote(self, room: Room) -> Participant:
        successor = room.earliest()
        successor.role = Role.MENTOR
        logger.info(f"Connection {successor.connection_id} promoted to mentor in room {room.key}")
        return successor

    def _forget_room(self, room: Room) -> List[str]:
        """Drop a room and every membership in it; returns who was still inside."""
        remaining = room.connection_ids()
        if self.rooms.get(room.key) is room:
            del self.rooms[room.key]
        for connection_id in remaining:
            if self.memberships.get(connection_id) == room.key:
                del self.memberships[connection_id]
        room.participants.clear()
        logger.info(f"Room {room.key} torn down after mentor left; redirecting {len(remaining)} participants")
        return remaining

    async def _redirect_to_lobby(self, room_key: str, connection_ids: List[str]):
        for connection_id in connection_ids:
            await self._send(connection_id, "redirect-to-lobby")
            try:
                await self.transport.leave_group(connection_id, room_key)
            except TransportFailure as e:
                logger.warning(e.message)
