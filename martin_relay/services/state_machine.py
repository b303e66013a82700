from enum import Enum
from typing import Callable, Iterable


class ConversationStage(str, Enum):
    INIT = "init"
    WAITING_BUYER_CONFIRMATION = "waiting_buyer_confirmation"
    WAITING_BUYER_CONTACT = "waiting_buyer_contact"


VALID_TRANSITIONS = {
    ConversationStage.INIT: [ConversationStage.WAITING_BUYER_CONFIRMATION],
    ConversationStage.WAITING_BUYER_CONFIRMATION: [ConversationStage.WAITING_BUYER_CONTACT],
    ConversationStage.WAITING_BUYER_CONTACT: [],
}

# Decides the next stage from the current one and the generated reply text.
StageClassifier = Callable[[ConversationStage, str], ConversationStage]


class InvalidTransitionError(Exception):
    def __init__(self, from_stage: ConversationStage, to_stage: ConversationStage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(f"Invalid transition: {from_stage.value} -> {to_stage.value}")


def can_transition(from_stage: ConversationStage, to_stage: ConversationStage) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_stage, [])
    return to_stage in allowed


def transition(from_stage: ConversationStage, to_stage: ConversationStage) -> ConversationStage:
    """Perform stage transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_stage, to_stage):
        raise InvalidTransitionError(from_stage, to_stage)
    return to_stage


def _contains_any(normalized: str, keywords: Iterable[str]) -> bool:
    return any(keyword.casefold() in normalized for keyword in keywords)


def keyword_stage_classifier(
    handoff_phrases: Iterable[str],
    name_words: Iterable[str],
    phone_words: Iterable[str],
) -> StageClassifier:
    """Substring heuristic over the assistant reply.

    A hand-off phrase moves INIT forward; a reply asking for both a name and
    a phone number moves WAITING_BUYER_CONFIRMATION forward. Anything else
    keeps the current stage.
    """
    handoff_phrases = tuple(handoff_phrases)
    name_words = tuple(name_words)
    phone_words = tuple(phone_words)

    def classify(stage: ConversationStage, reply_text: str) -> ConversationStage:
        normalized = (reply_text or "").casefold()
        if stage == ConversationStage.INIT and _contains_any(normalized, handoff_phrases):
            return ConversationStage.WAITING_BUYER_CONFIRMATION
        if (
            stage == ConversationStage.WAITING_BUYER_CONFIRMATION
            and _contains_any(normalized, name_words)
            and _contains_any(normalized, phone_words)
        ):
            return ConversationStage.WAITING_BUYER_CONTACT
        return stage

    return classify


def advance(stage: ConversationStage, reply_text: str, classifier: StageClassifier) -> ConversationStage:
    """Apply the classifier, ignoring any proposal that is not a forward transition."""
    proposed = classifier(stage, reply_text)
    if proposed == stage or not can_transition(stage, proposed):
        return stage
    return transition(stage, proposed)
