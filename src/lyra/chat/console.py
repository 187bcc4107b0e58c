"""Terminal front end driving a ConversationController."""

from __future__ import annotations

import asyncio
import sys
from typing import Callable, TextIO

from lyra.chat.controller import ConversationController
from lyra.core.errors import SubmissionPendingError, ValidationError
from lyra.storage.models import Exchange

WELCOME_TEXT = (
    "Welcome to LYRA\n"
    "Start a conversation with your AI assistant. Ask questions, manage your "
    "social media, or get insights about your content."
)
QUIT_COMMANDS = ("/quit", "/exit")


class ConsoleChat:
    """Line-based chat loop. Renders history, a pending indicator and replies."""

    def __init__(
        self,
        controller: ConversationController,
        out: TextIO | None = None,
        read_line: Callable[[str], str] = input,
    ):
        self._controller = controller
        self._out = out or sys.stdout
        self._read_line = read_line
        self._loading_shown = False
        self._indicated: str | None = None

    async def run(self) -> None:
        unsubscribe = self._controller.subscribe(self._on_change)
        try:
            history = await self._controller.load_history()
            if not history:
                self._write(WELCOME_TEXT)
            for exchange in history:
                self._write_exchange(exchange)

            while True:
                try:
                    line = await asyncio.to_thread(self._read_line, "> ")
                except EOFError:
                    break
                if line.strip().lower() in QUIT_COMMANDS:
                    break
                try:
                    exchange = await self._controller.submit(line)
                except ValidationError:
                    continue
                except SubmissionPendingError as e:
                    self._write(e.message)
                    continue
                self._write_reply(exchange)
        finally:
            unsubscribe()

    def _on_change(self, _snapshot: list[Exchange]) -> None:
        if self._controller.loading_history and not self._loading_shown:
            self._loading_shown = True
            self._write("Loading chat...")
        pending = self._controller.pending
        if pending is not None and pending.id != self._indicated:
            self._indicated = pending.id
            self._write("LYRA is typing...")

    def _write_exchange(self, exchange: Exchange) -> None:
        self._write(f"You: {exchange.prompt}")
        self._write_reply(exchange)

    def _write_reply(self, exchange: Exchange) -> None:
        if exchange.reply:
            self._write(f"LYRA: {exchange.reply}")

    def _write(self, text: str) -> None:
        print(text, file=self._out, flush=True)
