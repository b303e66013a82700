from martin_relay.services.state_machine import (
    ConversationStage,
    InvalidTransitionError,
    advance,
    can_transition,
    keyword_stage_classifier,
    transition,
)
from martin_relay.services.store import InMemoryStore, KeyValueStore
