from dataclasses import dataclass, replace
from typing import Optional

from martin_relay.services.state_machine import ConversationStage


@dataclass(frozen=True)
class Session:
    """Backend thread handle and conversation stage for one sender."""

    sender_key: str
    thread_id: Optional[str] = None
    stage: ConversationStage = ConversationStage.INIT

    def with_thread(self, thread_id: str) -> "Session":
        return replace(self, thread_id=thread_id)

    def with_stage(self, stage: ConversationStage) -> "Session":
        return replace(self, stage=stage)
