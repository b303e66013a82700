import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from martin_relay.errors import DeliveryError
from martin_relay.models import InboundEvent
from martin_relay.services.completion.base import CompletionBackend, RunHandle, ThreadMessage
from martin_relay.services.completion.driver import PollPolicy, TurnCompletionDriver
from martin_relay.services.concurrency import ConcurrencyGate
from martin_relay.services.dedup_service import DedupFilter
from martin_relay.services.orchestrator import TurnOrchestrator
from martin_relay.services.reply_dispatcher import ReplyDispatcher
from martin_relay.services.session_service import SessionTracker
from martin_relay.services.state_machine import keyword_stage_classifier
from martin_relay.services.store import InMemoryStore

SENDER = "5511999990000"


class FakeBackend(CompletionBackend):
    """Scripted completion backend.

    ``statuses``: first entry is returned by start_run, the rest by successive
    polls (the last one repeats). ``replies``: assistant text per turn.
    """

    def __init__(self, statuses: Optional[list[str]] = None, replies: Optional[list[str]] = None):
        self.statuses = list(statuses or ["completed"])
        self.replies = list(replies or ["Olá! Aqui é o Martín."])
        self.threads_created = 0
        self.posted: list[tuple[str, str, str]] = []
        self.poll_count = 0
        self.list_calls = 0
        self.cancelled: list[str] = []
        self.history: dict[str, list[ThreadMessage]] = {}
        self.calls: list[str] = []

    def _next_status(self) -> str:
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    async def create_thread(self) -> str:
        self.calls.append("create_thread")
        self.threads_created += 1
        thread_id = f"thread_{self.threads_created}"
        self.history[thread_id] = []
        return thread_id

    async def post_message(self, thread_id: str, role: str, text: str) -> None:
        self.calls.append("post_message")
        self.posted.append((thread_id, role, text))
        self.history.setdefault(thread_id, []).append(ThreadMessage(role=role, segments=[text]))

    async def start_run(self, thread_id: str) -> RunHandle:
        self.calls.append("start_run")
        return RunHandle(id=f"run_{len(self.posted)}", status=self._next_status())

    async def get_run_status(self, thread_id: str, run: RunHandle) -> str:
        self.calls.append("get_run_status")
        self.poll_count += 1
        return self._next_status()

    async def list_messages(self, thread_id: str) -> list[ThreadMessage]:
        self.calls.append("list_messages")
        self.list_calls += 1
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        self.history.setdefault(thread_id, []).append(ThreadMessage(role="assistant", segments=[reply]))
        return list(self.history[thread_id])

    async def cancel_run(self, thread_id: str, run: RunHandle) -> None:
        self.cancelled.append(run.id)


class FakeGateway:
    """Records sends. ``fail`` breaks every send, ``fail_for`` only the listed recipients."""

    def __init__(self, fail: bool = False, fail_for: tuple[str, ...] = ()):
        self.fail = fail
        self.fail_for = set(fail_for)
        self.sent: list[tuple[str, str]] = []

    async def send_text(self, recipient: str, text: str) -> dict:
        if self.fail or recipient in self.fail_for:
            raise DeliveryError(recipient, "HTTP 500")
        self.sent.append((recipient, text))
        return {"zaapId": "z1", "messageId": f"out_{len(self.sent)}"}


class ControlledSleep:
    """Sleep replacement whose waits only end when the test releases them."""

    def __init__(self):
        self.waiters: list[tuple[float, asyncio.Future]] = []

    async def __call__(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.waiters.append((seconds, future))
        await future

    def release(self, index: int = -1) -> None:
        _, future = self.waiters[index]
        if not future.done():
            future.set_result(None)

    @property
    def live(self) -> list[asyncio.Future]:
        return [future for _, future in self.waiters if not future.done()]

    async def wait_for(self, count: int) -> None:
        while len(self.waiters) < count:
            await asyncio.sleep(0)


async def instant_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


def text_event(sender: str, text: str, event_id: Optional[str] = None, **flags) -> InboundEvent:
    payload = {"phone": sender, "text": {"message": text}, "status": "RECEIVED", **flags}
    if event_id:
        payload["messageId"] = event_id
    return InboundEvent.from_payload(payload)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def alerter():
    return AsyncMock(return_value=True)


@pytest.fixture
def make_orchestrator(backend, gateway, alerter):
    def _make(
        *,
        backend=backend,
        gateway=gateway,
        sleep_func=instant_sleep,
        quiet_seconds: float = 5.0,
        admin_phone: Optional[str] = None,
        poll_policy: Optional[PollPolicy] = None,
    ) -> TurnOrchestrator:
        classifier = keyword_stage_classifier(
            ["VOU_GERAR_PRE_PEDIDO", "pré-pedido", "pre-pedido"],
            ["nome", "name"],
            ["telefone", "phone"],
        )
        return TurnOrchestrator(
            dedup=DedupFilter(InMemoryStore()),
            gate=ConcurrencyGate(InMemoryStore()),
            sessions=SessionTracker(InMemoryStore(), classifier),
            driver=TurnCompletionDriver(backend, poll_policy=poll_policy, sleep_func=instant_sleep),
            dispatcher=ReplyDispatcher(gateway),
            buffer_store=InMemoryStore(),
            quiet_seconds=quiet_seconds,
            sleep_func=sleep_func,
            admin_phone=admin_phone,
            alerter=alerter,
        )

    return _make


@pytest.fixture
def mock_env(monkeypatch):
    """Set every credential the orchestrator requires."""
    monkeypatch.setenv("ZAPI_INSTANCE_ID", "instance-1")
    monkeypatch.setenv("ZAPI_TOKEN", "token-1")
    monkeypatch.setenv("ZAPI_CLIENT_TOKEN", "client-token-1")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("OPENAI_ASSISTANT_ID", "asst_123")
