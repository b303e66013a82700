from martin_relay.models.events import InboundEvent, Turn
from martin_relay.models.session import Session

__all__ = ["InboundEvent", "Session", "Turn"]
