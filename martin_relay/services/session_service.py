from martin_relay.logging_config import get_logger, mask_sender
from martin_relay.models import Session
from martin_relay.services.state_machine import ConversationStage, StageClassifier, advance
from martin_relay.services.store import KeyValueStore

logger = get_logger("session_service")

STAGE_INSTRUCTIONS = {
    ConversationStage.INIT: (
        "The conversation is already under way. Do not introduce yourself again; "
        "answer the customer's latest messages."
    ),
    ConversationStage.WAITING_BUYER_CONFIRMATION: (
        "You already offered to prepare a pre-order. Do not repeat the product presentation; "
        "find out whether the customer confirms the purchase."
    ),
    ConversationStage.WAITING_BUYER_CONTACT: (
        "You already asked for the buyer's name and phone number. "
        "Collect what is missing and do not ask again for details already given."
    ),
}


def build_turn_prompt(message: str, stage: ConversationStage, *, returning: bool) -> str:
    """Wrap the combined turn text with the stage context block.

    The first turn of a fresh thread is sent unchanged so the assistant can
    greet the customer.
    """
    if not returning and stage == ConversationStage.INIT:
        return message
    return (
        "[CONTEXT]\n"
        f"Stage: {stage.value}\n"
        f"{STAGE_INSTRUCTIONS[stage]}\n"
        "[CUSTOMER MESSAGE]\n"
        f"{message}"
    )


class SessionTracker:
    """Per-sender thread handle and conversation stage."""

    def __init__(self, store: KeyValueStore, classifier: StageClassifier):
        self.store = store
        self.classifier = classifier

    @staticmethod
    def _key(sender_key: str) -> str:
        return f"martin:session:{sender_key}"

    def load(self, sender_key: str) -> Session:
        session = self.store.get(self._key(sender_key))
        if session is None:
            return Session(sender_key=sender_key)
        return session

    def save(self, session: Session) -> None:
        self.store.set(self._key(session.sender_key), session)

    def attach_thread(self, sender_key: str, thread_id: str) -> Session:
        session = self.load(sender_key).with_thread(thread_id)
        self.save(session)
        return session

    def record_reply(self, sender_key: str, reply_text: str) -> Session:
        """Advance the stage from the generated reply; never moves backwards."""
        session = self.load(sender_key)
        stage = advance(session.stage, reply_text, self.classifier)
        if stage != session.stage:
            logger.info(
                "Conversation stage advanced",
                extra={
                    "context": {
                        "sender": mask_sender(sender_key),
                        "from_stage": session.stage.value,
                        "to_stage": stage.value,
                    }
                },
            )
            session = session.with_stage(stage)
        self.save(session)
        return session
