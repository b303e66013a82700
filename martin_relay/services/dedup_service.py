from typing import Optional

from martin_relay.logging_config import get_logger
from martin_relay.models import InboundEvent
from martin_relay.services.store import KeyValueStore

logger = get_logger("dedup_service")

RECEIVED_STATUS = "RECEIVED"


def noise_reason(event: InboundEvent) -> Optional[str]:
    """Why the gateway event is protocol noise rather than a user turn, if it is."""
    if event.from_me:
        return "from_me"
    if event.is_status_reply:
        return "status_reply"
    if event.is_edit:
        return "edit"
    if event.status is not None and event.status.upper() != RECEIVED_STATUS:
        return f"status_{event.status.lower()}"
    return None


class DedupFilter:
    """Remembers provider event ids so redeliveries trigger processing once."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(event_id: str) -> str:
        return f"martin:dedup:{event_id}"

    def admit(self, event_id: Optional[str]) -> bool:
        # Events without an id cannot be deduplicated and always pass.
        if not event_id:
            return True
        key = self._key(event_id)
        if self.store.get(key):
            logger.info("Duplicate event skipped", extra={"context": {"event_id": event_id}})
            return False
        self.store.set(key, True)
        return True
