"""
Pytest configuration and shared fixtures.
"""

import os

# Must be set before config/database are imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from config import MentorPolicy
from content_store import InMemoryContentStore
from coordinator import RoomCoordinator
from exceptions import TransportFailure
from schemas import CodeBlockRecord
from transport import Transport

logging.basicConfig(level=logging.INFO)


class RecordingTransport(Transport):
    """Transport that keeps every outbound event instead of sending it."""

    def __init__(self):
        self.sent: List[Tuple[str, str, Any]] = []
        self.groups: Dict[str, Set[str]] = defaultdict(set)
        self.failing: Set[str] = set()

    async def send(self, connection_id: str, event: str, data: Any = None):
        if connection_id in self.failing:
            raise TransportFailure(f"{connection_id} is unreachable")
        self.sent.append((connection_id, event, data))

    async def enter_group(self, connection_id: str, room_key: str):
        self.groups[room_key].add(connection_id)

    async def leave_group(self, connection_id: str, room_key: str):
        self.groups[room_key].discard(connection_id)

    def events(self, connection_id: str, event: Optional[str] = None) -> List[Any]:
        """Payloads sent to a connection, optionally only for one event name."""
        return [
            data for cid, name, data in self.sent
            if cid == connection_id and (event is None or name == event)
        ]

    def names(self, connection_id: str) -> List[str]:
        return [name for cid, name, _ in self.sent if cid == connection_id]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def sum_block() -> CodeBlockRecord:
    return CodeBlockRecord(
        id="room-1",
        title="Sum",
        initial_template="function add(a, b) {}",
        solution="return a+b;",
    )


@pytest.fixture
def content_store(sum_block: CodeBlockRecord) -> InMemoryContentStore:
    return InMemoryContentStore([sum_block])


@pytest.fixture
def coordinator(transport, content_store) -> RoomCoordinator:
    """Coordinator with the teardown policy and student counts on."""
    return RoomCoordinator(transport, content_store)


@pytest.fixture
def promoting_coordinator(transport, content_store) -> RoomCoordinator:
    return RoomCoordinator(transport, content_store, mentor_policy=MentorPolicy.PROMOTE)
