from martin_relay.services.completion.base import CompletionBackend, RunHandle, ThreadMessage
from martin_relay.services.completion.driver import PollPolicy, TurnCompletionDriver
from martin_relay.services.completion.openai_assistants import OpenAIAssistantsBackend

__all__ = [
    "CompletionBackend",
    "OpenAIAssistantsBackend",
    "PollPolicy",
    "RunHandle",
    "ThreadMessage",
    "TurnCompletionDriver",
]
