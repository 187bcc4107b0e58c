"""Conversation controller: optimistic chat state reconciled with stored history."""

from __future__ import annotations

from typing import Callable

from lyra.chat.relay_client import RelayClient
from lyra.core.errors import EmptyPromptError, PersistenceError, RelayError, SubmissionPendingError
from lyra.log import get_logger
from lyra.storage.history_repo import HistoryRepository
from lyra.storage.models import Exchange

logger = get_logger(__name__)

ERROR_REPLY = "Sorry, there was an error processing your message. Please try again."

Listener = Callable[[list[Exchange]], None]


class ConversationController:
    """Owns the visible exchange list for one user session.

    Flow for ``submit``: append a provisional exchange -> relay -> store ->
    swap the provisional entry (by its temporary id) for the stored record, or
    for an error-state copy when any step fails. Only one submission may be in
    flight; the pending marker is set before the first await so a second
    ``submit`` on the same loop is rejected.
    """

    def __init__(self, owner: str, relay: RelayClient, history: HistoryRepository):
        self._owner = owner
        self._relay = relay
        self._history = history
        self._messages: list[Exchange] = []
        self._pending_id: str | None = None
        self._loading_history = False
        self._listeners: list[Listener] = []

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def messages(self) -> list[Exchange]:
        return list(self._messages)

    @property
    def pending(self) -> Exchange | None:
        if self._pending_id is None:
            return None
        return self._find(self._pending_id)

    @property
    def loading_history(self) -> bool:
        return self._loading_history

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a render callback; returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def load_history(self, owner: str | None = None) -> list[Exchange]:
        """Replace the visible list with stored history. Store errors are logged, not raised."""
        owner = owner or self._owner
        in_flight_id = self._pending_id
        known_ids = {e.id for e in self._messages}
        self._loading_history = True
        self._notify()
        try:
            records = await self._history.list_for_owner(owner, caller=self._owner)
        except PersistenceError as e:
            logger.error("history_load_failed", owner=owner, code=e.code, error=e.message)
            self._loading_history = False
            self._notify()
            return self.messages

        # Keep the in-flight entry (pending or already swapped) and anything
        # added while the read was suspended, unless the snapshot has it
        stored_ids = {r.id for r in records}
        carried = [
            e
            for e in self._messages
            if e.id not in stored_ids and (e.id == in_flight_id or e.id not in known_ids)
        ]
        self._loading_history = False
        self._messages = list(records) + carried
        logger.info("history_loaded", owner=owner, count=len(records), carried=len(carried))
        self._notify()
        return self.messages

    async def submit(self, prompt: str) -> Exchange:
        """Send ``prompt`` and return the exchange it resolved to."""
        text = (prompt or "").strip()
        if not text:
            raise EmptyPromptError()
        if self._pending_id is not None:
            raise SubmissionPendingError(self._pending_id)

        provisional = Exchange.provisional_for(self._owner, text)
        self._pending_id = provisional.id
        self._messages.append(provisional)
        self._notify()

        final = provisional.as_failed(ERROR_REPLY)
        try:
            final = await self._resolve(provisional)
        finally:
            self._swap(provisional.id, final)
            self._pending_id = None
            self._notify()
        return final

    async def _resolve(self, provisional: Exchange) -> Exchange:
        try:
            reply = await self._relay.send(provisional.prompt, self._owner)
        except RelayError as e:
            logger.warning("submit_relay_failed", owner=self._owner, code=e.code, error=e.message)
            return provisional.as_failed(ERROR_REPLY)
        except Exception as e:
            logger.exception("submit_relay_unexpected_error", owner=self._owner, error=str(e))
            return provisional.as_failed(ERROR_REPLY)

        try:
            stored = await self._history.create(
                self._owner,
                provisional.prompt,
                reply,
                provisional.metadata,
                caller=self._owner,
            )
        except PersistenceError as e:
            # The reply was produced but is dropped with the failed turn
            logger.error("submit_persist_failed", owner=self._owner, code=e.code, error=e.message)
            return provisional.as_failed(ERROR_REPLY)
        except Exception as e:
            logger.exception("submit_persist_unexpected_error", owner=self._owner, error=str(e))
            return provisional.as_failed(ERROR_REPLY)

        logger.info("submit_succeeded", owner=self._owner, exchange_id=stored.id)
        return stored

    def _find(self, exchange_id: str) -> Exchange | None:
        for exchange in self._messages:
            if exchange.id == exchange_id:
                return exchange
        return None

    def _swap(self, temp_id: str, record: Exchange) -> None:
        for index, existing in enumerate(self._messages):
            if existing.id == temp_id:
                self._messages[index] = record
                return
        # Provisional entry vanished (list rebuilt meanwhile)
        if self._find(record.id) is None:
            self._messages.append(record)

    def _notify(self) -> None:
        snapshot = self.messages
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("listener_failed", error=str(e))
