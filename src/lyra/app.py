"""Application orchestrator - wires the chat components and manages lifecycle."""

from __future__ import annotations

from lyra.chat.console import ConsoleChat
from lyra.chat.controller import ConversationController
from lyra.chat.relay_client import RelayClient
from lyra.config import AppConfig
from lyra.log import get_logger
from lyra.storage.database import Database
from lyra.storage.history_repo import HistoryRepository

logger = get_logger(__name__)


class LyraApp:
    """Client-side application for one authenticated user."""

    def __init__(self, config: AppConfig, user_id: str):
        self.config = config
        self.user_id = user_id
        self.db = Database(config.storage.db_path)
        self.history = HistoryRepository(self.db)
        self.relay_client = RelayClient(config.client)
        self.controller = ConversationController(
            owner=user_id,
            relay=self.relay_client,
            history=self.history,
        )

    async def start(self) -> None:
        await self.db.initialize()
        logger.info("lyra_started", user_id=self.user_id, relay_url=self.config.client.relay_url)

    async def stop(self) -> None:
        await self.db.close()
        logger.info("lyra_stopped", user_id=self.user_id)

    async def run_console(self) -> None:
        """Start, run the interactive chat until the user quits, then stop."""
        await self.start()
        try:
            await ConsoleChat(self.controller).run()
        finally:
            await self.stop()
