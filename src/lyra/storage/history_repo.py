"""Owner-scoped repository over the chat_messages table."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from lyra.core.errors import AccessDeniedError, PersistenceError
from lyra.log import get_logger
from lyra.storage.database import Database
from lyra.storage.models import Exchange

logger = get_logger(__name__)


class HistoryRepository:
    """Append and ordered read of exchanges.

    Every call names the authenticated ``caller``; rows belonging to anyone else
    are neither readable nor writable, mirroring the row-level policies of the
    hosted store.
    """

    def __init__(self, db: Database):
        self._db = db

    async def create(
        self,
        owner: str,
        prompt: str,
        reply: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
        *,
        caller: str,
    ) -> Exchange:
        """Insert one exchange and return the stored record with its store-assigned id."""
        self._authorize(caller, owner)
        record_id = str(uuid.uuid4())
        try:
            await self._db.conn.execute(
                """INSERT INTO chat_messages (id, user_id, message, response, metadata_json)
                   VALUES (?, ?, ?, ?, ?)""",
                (record_id, owner, prompt, reply, json.dumps(metadata or {})),
            )
            await self._db.conn.commit()
            cursor = await self._db.conn.execute(
                "SELECT * FROM chat_messages WHERE id = ?", (record_id,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(code="STORE_WRITE_ERROR", message=str(e)) from e

        if row is None:
            raise PersistenceError(code="STORE_WRITE_ERROR", message="Inserted row not found")
        return self._row_to_exchange(row)

    async def list_for_owner(self, owner: str, *, caller: str) -> list[Exchange]:
        """All exchanges for ``owner``, oldest first."""
        self._authorize(caller, owner)
        try:
            cursor = await self._db.conn.execute(
                """SELECT * FROM chat_messages
                   WHERE user_id = ?
                   ORDER BY created_at ASC, rowid ASC""",
                (owner,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(code="STORE_READ_ERROR", message=str(e)) from e
        return [self._row_to_exchange(row) for row in rows]

    @staticmethod
    def _authorize(caller: str, owner: str) -> None:
        if not caller or caller != owner:
            logger.warning("history_access_denied", caller=caller, owner=owner)
            raise AccessDeniedError(caller=caller, owner=owner)

    @staticmethod
    def _row_to_exchange(row) -> Exchange:
        return Exchange(
            id=row["id"],
            owner=row["user_id"],
            prompt=row["message"],
            reply=row["response"],
            created_at=datetime.fromisoformat(row["created_at"]),
            metadata=json.loads(row["metadata_json"]),
        )
