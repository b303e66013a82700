"""Exception types raised along the turn pipeline."""

from typing import Iterable, Optional


class RelayError(Exception):
    """Base exception for martin-relay."""


class ConfigurationError(RelayError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Missing configuration: {', '.join(self.missing)}")


class NormalizationDiscard(RelayError):
    """Raised when an inbound payload yields no sender or no message text."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ConcurrencyBusy(RelayError):
    def __init__(self, sender_key: str):
        self.sender_key = sender_key
        super().__init__(f"Turn already in progress for sender {sender_key}")


class BackendError(RelayError):
    """Completion backend finished without usable assistant output."""

    def __init__(self, status: str, detail: Optional[str] = None):
        self.status = status
        self.detail = detail
        message = f"Completion backend error: {status}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class BackendTimeout(BackendError):
    def __init__(self, waited_seconds: float, last_status: str):
        self.waited_seconds = waited_seconds
        self.last_status = last_status
        super().__init__("timeout", f"run still {last_status} after {waited_seconds:.1f}s")


class DeliveryError(RelayError):
    def __init__(self, recipient: str, detail: str):
        self.recipient = recipient
        self.detail = detail
        super().__init__(f"Delivery to {recipient} failed: {detail}")
