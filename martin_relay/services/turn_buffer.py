import asyncio
from typing import Awaitable, Callable, Optional

from martin_relay.logging_config import get_logger, mask_sender
from martin_relay.models import Turn
from martin_relay.services.store import KeyValueStore

logger = get_logger("turn_buffer")

SleepFunc = Callable[[float], Awaitable[None]]
FireCallback = Callable[[str], Awaitable[None]]


class TurnBuffer:
    """Per-sender message buffer with a cancel-and-replace debounce timer.

    Every ``append`` restarts the sender's quiet period. When the period
    elapses without another message, ``on_fire(sender_key)`` runs; it is
    expected to claim the buffered messages with ``take``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        quiet_seconds: float,
        on_fire: FireCallback,
        sleep_func: SleepFunc = asyncio.sleep,
    ):
        self.store = store
        self.quiet_seconds = quiet_seconds
        self.on_fire = on_fire
        self.sleep_func = sleep_func
        self._timers: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()

    @staticmethod
    def _key(sender_key: str) -> str:
        return f"martin:buffer:{sender_key}"

    def pending(self, sender_key: str) -> tuple[str, ...]:
        return tuple(self.store.get(self._key(sender_key)) or ())

    @property
    def timer_count(self) -> int:
        return len(self._timers)

    @property
    def active_count(self) -> int:
        """Fired timers whose dispatch is still running."""
        return len(self._tasks) - len(self._timers)

    def append(self, sender_key: str, text: str) -> None:
        key = self._key(sender_key)
        self.store.set(key, self.pending(sender_key) + (text,))

        previous = self._timers.pop(sender_key, None)
        if previous is not None:
            previous.cancel()

        task = asyncio.create_task(self._wait_and_fire(sender_key))
        self._timers[sender_key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(
            "Debounce timer armed",
            extra={
                "context": {
                    "sender": mask_sender(sender_key),
                    "buffered": len(self.pending(sender_key)),
                    "restarted": previous is not None,
                }
            },
        )

    def take(self, sender_key: str) -> Optional[Turn]:
        """Snapshot and clear the sender's buffer in one step."""
        key = self._key(sender_key)
        messages = self.pending(sender_key)
        self.store.delete(key)
        if not messages:
            return None
        return Turn(sender_key=sender_key, messages=messages)

    async def _wait_and_fire(self, sender_key: str) -> None:
        await self.sleep_func(self.quiet_seconds)
        # Past this point a new message arms a fresh timer instead of cancelling us.
        if self._timers.get(sender_key) is asyncio.current_task():
            del self._timers[sender_key]
        try:
            await self.on_fire(sender_key)
        except Exception:
            logger.exception("Turn dispatch failed", extra={"context": {"sender": mask_sender(sender_key)}})

    async def join(self) -> None:
        """Wait until no timer is pending and no fired turn is still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        await self.join()
