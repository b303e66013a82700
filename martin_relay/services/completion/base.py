from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

RUN_QUEUED = "queued"
RUN_IN_PROGRESS = "in_progress"
RUN_COMPLETED = "completed"
PENDING_RUN_STATUSES = frozenset({RUN_QUEUED, RUN_IN_PROGRESS})


@dataclass
class RunHandle:
    id: str
    status: str


@dataclass
class ThreadMessage:
    role: str
    segments: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.segments).strip()


class CompletionBackend(ABC):
    """Thread/run style conversational backend (e.g. OpenAI Assistants)."""

    @abstractmethod
    async def create_thread(self) -> str:
        """Create a conversation thread and return its id."""

    @abstractmethod
    async def post_message(self, thread_id: str, role: str, text: str) -> None:
        """Append a message to the thread."""

    @abstractmethod
    async def start_run(self, thread_id: str) -> RunHandle:
        """Start a reasoning run over the thread."""

    @abstractmethod
    async def get_run_status(self, thread_id: str, run: RunHandle) -> str:
        """Return the current status of a run."""

    @abstractmethod
    async def list_messages(self, thread_id: str) -> List[ThreadMessage]:
        """Return thread messages, oldest first."""

    async def cancel_run(self, thread_id: str, run: RunHandle) -> None:
        """Best-effort cancellation of a run. Backends without one do nothing."""
        return None
