import logging
from typing import Any

import socketio

from exceptions import TransportFailure

logger = logging.getLogger(__name__)


class Transport:
    """Event channel the coordinator talks to clients through."""

    async def send(self, connection_id: str, event: str, data: Any = None):
        raise NotImplementedError

    async def enter_group(self, connection_id: str, room_key: str):
        raise NotImplementedError

    async def leave_group(self, connection_id: str, room_key: str):
        raise NotImplementedError


class SocketIOTransport(Transport):
    """Transport over a python-socketio AsyncServer; connection ids are sids."""

    def __init__(self, sio: socketio.AsyncServer):
        self.sio = sio

    async def send(self, connection_id: str, event: str, data: Any = None):
        try:
            await self.sio.emit(event, data, to=connection_id)
        except Exception as e:
            raise TransportFailure(f"Failed to send {event} to {connection_id}: {e}") from e

    async def enter_group(self, connection_id: str, room_key: str):
        try:
            await self.sio.enter_room(connection_id, room_key)
        except Exception as e:
            raise TransportFailure(f"Failed to add {connection_id} to room {room_key}: {e}") from e

    async def leave_group(self, connection_id: str, room_key: str):
        try:
            await self.sio.leave_room(connection_id, room_key)
        except Exception as e:
            raise TransportFailure(f"Failed to remove {connection_id} from room {room_key}: {e}") from e
