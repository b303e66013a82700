from contextlib import contextmanager
from typing import Iterator

from martin_relay.errors import ConcurrencyBusy
from martin_relay.services.store import KeyValueStore


class ConcurrencyGate:
    """At most one processing pass per sender.

    A busy gate is not a queue: the caller abandons its trigger.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(sender_key: str) -> str:
        return f"martin:lock:{sender_key}"

    def is_busy(self, sender_key: str) -> bool:
        return bool(self.store.get(self._key(sender_key)))

    def try_enter(self, sender_key: str) -> bool:
        key = self._key(sender_key)
        if self.store.get(key):
            return False
        self.store.set(key, True)
        return True

    def leave(self, sender_key: str) -> None:
        self.store.delete(self._key(sender_key))

    @contextmanager
    def claim(self, sender_key: str) -> Iterator[None]:
        """Hold the gate for the body of a ``with`` block; raises ConcurrencyBusy if taken."""
        if not self.try_enter(sender_key):
            raise ConcurrencyBusy(sender_key)
        try:
            yield
        finally:
            self.leave(sender_key)
