"""
Read-only access to code block definitions.

The coordinator only ever asks one question of the store: "what is the
solution for this room key?". Lookups may hit a database, so every method is
a coroutine and the SQL implementation runs its query in a worker thread.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from exceptions import LookupFailure
from models import CodeBlock
from schemas import CodeBlockRecord

logger = logging.getLogger(__name__)

# SQLite INTEGER is a signed 64-bit value
MAX_BLOCK_ID = 2 ** 63 - 1


class ContentStore:
    """Interface for code block lookups."""

    async def find_by_id(self, key: str) -> Optional[CodeBlockRecord]:
        raise NotImplementedError

    async def list_all(self) -> List[CodeBlockRecord]:
        raise NotImplementedError


class SqlContentStore(ContentStore):
    """Content store backed by the code_blocks table."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def find_by_id(self, key: str) -> Optional[CodeBlockRecord]:
        try:
            block_id = int(key)
        except (TypeError, ValueError):
            logger.debug(f"Room key {key!r} is not a code block id")
            return None
        if not 0 < block_id <= MAX_BLOCK_ID:
            logger.debug(f"Code block id {block_id} is out of range")
            return None
        return await asyncio.to_thread(self._find_by_id, block_id)

    async def list_all(self) -> List[CodeBlockRecord]:
        return await asyncio.to_thread(self._list_all)

    def _find_by_id(self, block_id: int) -> Optional[CodeBlockRecord]:
        db = self.session_factory()
        try:
            block = db.get(CodeBlock, block_id)
            return block.to_record() if block else None
        except SQLAlchemyError as e:
            raise LookupFailure(f"Error fetching code block {block_id}: {e}") from e
        finally:
            db.close()

    def _list_all(self) -> List[CodeBlockRecord]:
        db = self.session_factory()
        try:
            return [block.to_record() for block in db.query(CodeBlock).order_by(CodeBlock.id).all()]
        except SQLAlchemyError as e:
            raise LookupFailure(f"Error fetching code blocks: {e}") from e
        finally:
            db.close()


class InMemoryContentStore(ContentStore):
    """Content store over a fixed set of records, keyed by record id."""

    def __init__(self, records: Iterable[CodeBlockRecord] = ()):
        self.records: Dict[str, CodeBlockRecord] = {r.id: r for r in records}

    def add(self, record: CodeBlockRecord):
        self.records[record.id] = record

    async def find_by_id(self, key: str) -> Optional[CodeBlockRecord]:
        return self.records.get(key)

    async def list_all(self) -> List[CodeBlockRecord]:
        return list(self.records.values())
