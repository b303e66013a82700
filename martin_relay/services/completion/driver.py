import asyncio
import math
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from martin_relay.errors import BackendError, BackendTimeout
from martin_relay.logging_config import get_logger
from martin_relay.services.completion.base import (
    PENDING_RUN_STATUSES,
    RUN_COMPLETED,
    CompletionBackend,
    ThreadMessage,
)
from martin_relay.services.session_service import build_turn_prompt
from martin_relay.services.state_machine import ConversationStage

logger = get_logger("completion.driver")

# Tokens the assistant emits for the orchestrator, never meant for the customer.
CONTROL_MARKERS = ("VOU_GERAR_PRE_PEDIDO",)


@dataclass(frozen=True)
class PollPolicy:
    interval_seconds: float = 1.0
    max_wait_seconds: float = 120.0

    @property
    def max_polls(self) -> int:
        if self.interval_seconds <= 0:
            return max(1, int(self.max_wait_seconds))
        return max(1, math.ceil(self.max_wait_seconds / self.interval_seconds))


def strip_control_markers(text: str) -> str:
    for marker in CONTROL_MARKERS:
        text = text.replace(marker, "")
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def latest_assistant_text(messages: list[ThreadMessage]) -> Optional[str]:
    for message in reversed(messages):
        if message.role == "assistant":
            return message.text or None
    return None


class TurnCompletionDriver:
    """Submit a turn to a thread, wait for the run, return the assistant reply."""

    def __init__(
        self,
        backend: CompletionBackend,
        *,
        poll_policy: Optional[PollPolicy] = None,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.backend = backend
        self.poll_policy = poll_policy or PollPolicy()
        self.sleep_func = sleep_func

    async def ensure_thread(self, thread_id: Optional[str]) -> tuple[str, bool]:
        """Return ``(thread_id, created)``, creating a thread when none is given."""
        if thread_id:
            return thread_id, False
        thread_id = await self.backend.create_thread()
        logger.info("Thread created", extra={"context": {"thread_id": thread_id}})
        return thread_id, True

    async def complete(
        self,
        thread_id: str,
        message: str,
        stage: ConversationStage,
        *,
        returning: bool = True,
    ) -> str:
        prompt = build_turn_prompt(message, stage, returning=returning)
        await self.backend.post_message(thread_id, "user", prompt)

        run = await self.backend.start_run(thread_id)
        status = run.status
        polls = 0
        while status in PENDING_RUN_STATUSES:
            if polls >= self.poll_policy.max_polls:
                logger.error(
                    "Run exceeded maximum wait",
                    extra={"context": {"thread_id": thread_id, "run_id": run.id, "status": status, "polls": polls}},
                )
                await self.backend.cancel_run(thread_id, run)
                raise BackendTimeout(polls * self.poll_policy.interval_seconds, status)
            logger.debug(f"Run status: {status}", extra={"context": {"thread_id": thread_id, "run_id": run.id}})
            await self.sleep_func(self.poll_policy.interval_seconds)
            status = await self.backend.get_run_status(thread_id, run)
            polls += 1

        if status != RUN_COMPLETED:
            logger.error(
                "Run finished without completion",
                extra={"context": {"thread_id": thread_id, "run_id": run.id, "status": status}},
            )
            raise BackendError(status or "unknown")

        reply = latest_assistant_text(await self.backend.list_messages(thread_id))
        if not reply:
            raise BackendError("no-reply")
        return reply
