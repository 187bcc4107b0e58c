"""Tests for the conversation controller's optimistic update and reconciliation."""

import asyncio

import httpx
import pytest

from conftest import RecordingTransport
from lyra.chat.controller import ERROR_REPLY, ConversationController
from lyra.chat.relay_client import RelayClient
from lyra.core.errors import (
    EmptyPromptError,
    PersistenceError,
    RelayUnavailableError,
    SubmissionPendingError,
)
from lyra.storage.models import TEMP_ID_PREFIX

OWNER = "user-1"


class HeldRelay:
    """Relay stub whose replies are released by the test."""

    def __init__(self, reply: str = "R"):
        self.reply = reply
        self.release = asyncio.Event()
        self.calls: list[tuple[str, str]] = []

    async def send(self, message: str, user_id: str) -> str:
        self.calls.append((message, user_id))
        await self.release.wait()
        return self.reply


class FailingHistory:
    """Delegates reads to a real repository and fails every write."""

    def __init__(self, inner):
        self._inner = inner

    async def list_for_owner(self, owner, *, caller):
        return await self._inner.list_for_owner(owner, caller=caller)

    async def create(self, *args, **kwargs):
        raise PersistenceError(code="STORE_WRITE_ERROR", message="disk full")


def _relay(client_config, handler) -> tuple[RelayClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    return RelayClient(client_config, http_client=httpx.AsyncClient(transport=transport)), transport


@pytest.mark.asyncio
async def test_load_history_empty(history, client_config):
    relay, _ = _relay(client_config, lambda r: httpx.Response(200, json={"response": "R"}))
    controller = ConversationController(OWNER, relay, history)

    assert await controller.load_history(OWNER) == []
    assert controller.messages == []
    assert not controller.loading_history


@pytest.mark.asyncio
async def test_submit_success_persists_and_replaces_provisional(history, client_config):
    relay, transport = _relay(
        client_config, lambda r: httpx.Response(200, json={"success": True, "response": "R"})
    )
    controller = ConversationController(OWNER, relay, history)
    await controller.load_history()

    final = await controller.submit("  hello  ")

    assert final.reply == "R"
    assert final.prompt == "hello"
    assert not final.provisional
    assert not final.id.startswith(TEMP_ID_PREFIX)
    assert controller.messages == [final]
    assert controller.pending is None
    assert transport.last_json() == {"message": "hello", "userId": OWNER}

    stored = await history.list_for_owner(OWNER, caller=OWNER)
    assert [(e.id, e.prompt, e.reply) for e in stored] == [(final.id, "hello", "R")]


@pytest.mark.asyncio
async def test_submit_relay_502_keeps_error_in_memory_only(history, client_config):
    relay, _ = _relay(
        client_config,
        lambda r: httpx.Response(502, json={"success": False, "response": "Failed"}),
    )
    controller = ConversationController(OWNER, relay, history)

    final = await controller.submit("hello")

    assert final.reply == ERROR_REPLY
    assert final.failed
    assert final.id.startswith(TEMP_ID_PREFIX)
    assert controller.messages == [final]
    assert await history.list_for_owner(OWNER, caller=OWNER) == []


@pytest.mark.asyncio
async def test_submit_network_failure_maps_to_error_placeholder(history, client_config):
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    relay, _ = _relay(client_config, _refuse)
    controller = ConversationController(OWNER, relay, history)

    final = await controller.submit("hello")

    assert final.reply == ERROR_REPLY
    assert len(controller.messages) == 1
    assert await history.list_for_owner(OWNER, caller=OWNER) == []


@pytest.mark.asyncio
async def test_submit_persistence_failure_discards_reply(history, client_config):
    relay, transport = _relay(client_config, lambda r: httpx.Response(200, json={"response": "R"}))
    controller = ConversationController(OWNER, relay, FailingHistory(history))

    final = await controller.submit("hello")

    assert len(transport.requests) == 1
    assert final.reply == ERROR_REPLY
    assert final.failed
    assert controller.messages == [final]


@pytest.mark.asyncio
@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
async def test_empty_prompt_rejected_without_side_effects(history, prompt):
    relay = HeldRelay()
    controller = ConversationController(OWNER, relay, history)

    with pytest.raises(EmptyPromptError):
        await controller.submit(prompt)

    assert controller.messages == []
    assert relay.calls == []


@pytest.mark.asyncio
async def test_second_submit_rejected_while_pending(history):
    relay = HeldRelay(reply="first reply")
    controller = ConversationController(OWNER, relay, history)

    task = asyncio.create_task(controller.submit("first"))
    await asyncio.sleep(0)

    assert len(controller.messages) == 1
    pending = controller.pending
    assert pending is not None and pending.pending
    assert pending.reply is None
    assert pending.id.startswith(TEMP_ID_PREFIX)

    with pytest.raises(SubmissionPendingError):
        await controller.submit("second")
    assert len(controller.messages) == 1
    assert relay.calls == [("first", OWNER)]

    relay.release.set()
    final = await task

    assert final.reply == "first reply"
    assert controller.messages == [final]
    assert controller.pending is None

    follow_up = await controller.submit("second")
    assert [e.id for e in controller.messages] == [final.id, follow_up.id]


@pytest.mark.asyncio
async def test_provisional_entry_visible_before_network_call(history):
    relay = HeldRelay()
    controller = ConversationController(OWNER, relay, history)
    seen: list[list] = []
    controller.subscribe(lambda snapshot: seen.append(snapshot))

    task = asyncio.create_task(controller.submit("hello"))
    await asyncio.sleep(0)

    assert len(seen) == 1
    assert seen[0][0].prompt == "hello"
    assert seen[0][0].reply is None

    relay.release.set()
    final = await task
    assert seen[-1] == [final]


@pytest.mark.asyncio
async def test_each_submit_adds_exactly_one_entry(history, client_config):
    replies = iter(["a", "b", "c"])
    relay, _ = _relay(client_config, lambda r: httpx.Response(200, json={"response": next(replies)}))
    controller = ConversationController(OWNER, relay, history)

    for expected, prompt in enumerate(["one", "two", "three"], start=1):
        await controller.submit(prompt)
        assert len(controller.messages) == expected

    ids = [e.id for e in controller.messages]
    assert len(set(ids)) == len(ids)
    assert [e.reply for e in controller.messages] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_round_trip_through_reload(history, client_config):
    relay, _ = _relay(client_config, lambda r: httpx.Response(200, json={"response": "R"}))
    controller = ConversationController(OWNER, relay, history)
    final = await controller.submit("hello")

    fresh = ConversationController(OWNER, relay, history)
    reloaded = await fresh.load_history(OWNER)

    assert [(e.id, e.prompt, e.reply) for e in reloaded] == [(final.id, "hello", "R")]


@pytest.mark.asyncio
async def test_failed_turn_not_restored_after_reload(history, client_config):
    relay, _ = _relay(client_config, lambda r: httpx.Response(502, json={"success": False}))
    controller = ConversationController(OWNER, relay, history)
    await controller.submit("hello")

    fresh = ConversationController(OWNER, relay, history)
    assert await fresh.load_history() == []


@pytest.mark.asyncio
async def test_reload_during_submission_keeps_single_entry(history):
    await history.create(OWNER, "earlier", "old reply", caller=OWNER)
    relay = HeldRelay(reply="new reply")
    controller = ConversationController(OWNER, relay, history)

    task = asyncio.create_task(controller.submit("now"))
    await asyncio.sleep(0)
    await controller.load_history()

    assert [e.prompt for e in controller.messages] == ["earlier", "now"]
    assert controller.pending is not None

    relay.release.set()
    final = await task

    assert [e.prompt for e in controller.messages] == ["earlier", "now"]
    assert controller.messages[-1] == final
    assert final.reply == "new reply"


@pytest.mark.asyncio
async def test_load_history_fails_soft(history, client_config):
    relay, _ = _relay(client_config, lambda r: httpx.Response(200, json={"response": "R"}))
    controller = ConversationController(OWNER, relay, history)

    # reading another user's history is refused by the store
    assert await controller.load_history("someone-else") == []
    assert not controller.loading_history


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications(history):
    relay = HeldRelay()
    relay.release.set()
    controller = ConversationController(OWNER, relay, history)
    seen: list = []
    unsubscribe = controller.subscribe(seen.append)

    await controller.submit("hello")
    count = len(seen)
    unsubscribe()
    await controller.submit("again")

    assert count == 2
    assert len(seen) == count


@pytest.mark.asyncio
async def test_relay_errors_are_not_retried(history):
    class CountingRelay:
        calls = 0

        async def send(self, message, user_id):
            CountingRelay.calls += 1
            raise RelayUnavailableError(code="RELAY_UNAVAILABLE", message="down")

    controller = ConversationController(OWNER, CountingRelay(), history)

    final = await controller.submit("hello")

    assert final.reply == ERROR_REPLY
    assert CountingRelay.calls == 1


class GatedHistory:
    """Takes the read snapshot immediately but returns it only when the gate opens."""

    def __init__(self, inner):
        self._inner = inner
        self.snapshot_taken = asyncio.Event()
        self.gate = asyncio.Event()

    async def list_for_owner(self, owner, *, caller):
        records = await self._inner.list_for_owner(owner, caller=caller)
        self.snapshot_taken.set()
        await self.gate.wait()
        return records

    async def create(self, *args, **kwargs):
        return await self._inner.create(*args, **kwargs)


@pytest.mark.asyncio
async def test_submission_resolved_during_reload_stays_visible(history):
    relay = HeldRelay(reply="R")
    gated = GatedHistory(history)
    controller = ConversationController(OWNER, relay, gated)

    submit_task = asyncio.create_task(controller.submit("hello"))
    await asyncio.sleep(0)
    load_task = asyncio.create_task(controller.load_history())
    await gated.snapshot_taken.wait()

    relay.release.set()
    final = await submit_task
    gated.gate.set()
    await load_task

    assert controller.messages == [final]
    assert final.reply == "R"
    assert not final.provisional


@pytest.mark.asyncio
async def test_failed_submission_during_reload_stays_visible(history):
    relay = HeldRelay()
    gated = GatedHistory(FailingHistory(history))
    controller = ConversationController(OWNER, relay, gated)

    submit_task = asyncio.create_task(controller.submit("hello"))
    await asyncio.sleep(0)
    load_task = asyncio.create_task(controller.load_history())
    await gated.snapshot_taken.wait()

    relay.release.set()
    final = await submit_task
    gated.gate.set()
    await load_task

    assert final.failed
    assert controller.messages == [final]
