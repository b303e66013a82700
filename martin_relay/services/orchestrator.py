"""Conversation turn orchestration.

Inbound event -> noise filter -> dedup -> normalize -> turn buffer. When a
sender's quiet period elapses the buffered messages become one turn, which
is completed against the assistant backend and answered with exactly one
reply. Every failure stays inside the turn: the sender gets no reply, the
operator gets a log line and an alert.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from martin_relay.config import Settings
from martin_relay.errors import BackendError, ConcurrencyBusy, DeliveryError, NormalizationDiscard
from martin_relay.logging_config import get_logger, mask_sender
from martin_relay.models import InboundEvent, Turn
from martin_relay.services.alert_service import alert_error
from martin_relay.services.completion import OpenAIAssistantsBackend, PollPolicy, TurnCompletionDriver
from martin_relay.services.concurrency import ConcurrencyGate
from martin_relay.services.dedup_service import DedupFilter, noise_reason
from martin_relay.services.normalizer import NOT_PROVIDED, normalize_event, normalize_sender_key
from martin_relay.services.pre_order import PreOrder, extract_pre_order
from martin_relay.services.reply_dispatcher import ReplyDispatcher
from martin_relay.services.session_service import SessionTracker
from martin_relay.services.state_machine import ConversationStage, keyword_stage_classifier
from martin_relay.services.store import InMemoryStore, KeyValueStore
from martin_relay.services.turn_buffer import SleepFunc, TurnBuffer
from martin_relay.services.zapi_service import OutboundGateway, ZapiClient

logger = get_logger("orchestrator")

ADMIN_HANDOFF_NOTICE = "Purchase hand-off started for {sender}"
ADMIN_PRE_ORDER_DETAILS = "Hotel: {hotel}\nContact: {contact}\nQty: {qty}\nTotal: {total:.2f}"
DEFAULT_PRE_ORDER_CONFIRMATION = "Seu pré-pedido foi registrado. Em breve entraremos em contato."

Alerter = Callable[[str, Optional[dict]], Awaitable[bool]]


class IngestOutcome(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    DISCARDED = "discarded"
    BUFFERED = "buffered"


class TurnOrchestrator:
    def __init__(
        self,
        *,
        dedup: DedupFilter,
        gate: ConcurrencyGate,
        sessions: SessionTracker,
        driver: TurnCompletionDriver,
        dispatcher: ReplyDispatcher,
        buffer_store: KeyValueStore,
        quiet_seconds: float,
        sleep_func: SleepFunc = asyncio.sleep,
        admin_phone: Optional[str] = None,
        alerter: Alerter = alert_error,
        pre_order_confirmation: str = DEFAULT_PRE_ORDER_CONFIRMATION,
    ):
        self.dedup = dedup
        self.gate = gate
        self.sessions = sessions
        self.driver = driver
        self.dispatcher = dispatcher
        self.admin_phone = admin_phone
        self.alerter = alerter
        self.pre_order_confirmation = pre_order_confirmation
        self.buffer = TurnBuffer(
            buffer_store,
            quiet_seconds=quiet_seconds,
            on_fire=self.dispatch,
            sleep_func=sleep_func,
        )

    async def ingest(self, event: InboundEvent) -> IngestOutcome:
        context = {"event_id": event.event_id, "sender": mask_sender(normalize_sender_key(event.sender))}

        reason = noise_reason(event)
        if reason:
            logger.info("Event ignored", extra={"context": {**context, "reason": reason}})
            return IngestOutcome.IGNORED

        if not self.dedup.admit(event.event_id):
            return IngestOutcome.DUPLICATE

        try:
            message = normalize_event(event)
        except NormalizationDiscard as e:
            logger.info("Event discarded", extra={"context": {**context, "reason": e.reason}})
            return IngestOutcome.DISCARDED

        self.buffer.append(message.sender_key, message.text)
        logger.info("Message buffered", extra={"context": context})
        return IngestOutcome.BUFFERED

    async def dispatch(self, sender_key: str) -> None:
        """Debounce fired: run one turn for the sender unless one is already running."""
        context = {"sender": mask_sender(sender_key)}
        try:
            with self.gate.claim(sender_key):
                turn = self.buffer.take(sender_key)
                if turn is None:
                    logger.info("Empty buffer at dispatch, turn abandoned", extra={"context": context})
                    return
                await self._process_turn(turn)
        except ConcurrencyBusy:
            logger.info(
                "Sender busy, debounce trigger dropped",
                extra={"context": {**context, "stranded_messages": len(self.buffer.pending(sender_key))}},
            )
        except BackendError as e:
            logger.error(f"Turn failed at completion backend: {e}", extra={"context": {**context, "status": e.status}})
            await self.alerter("Completion backend error", {**context, "status": e.status})
        except DeliveryError as e:
            logger.error(f"Reply delivery failed: {e.detail}", extra={"context": context})
            await self.alerter("WhatsApp delivery failed", {**context, "error": e.detail})
        except Exception as e:
            logger.exception("Unexpected error while processing turn", extra={"context": context})
            await self.alerter("Turn processing crashed", {**context, "error": str(e)})

    async def _process_turn(self, turn: Turn) -> None:
        sender_key = turn.sender_key
        session = self.sessions.load(sender_key)
        logger.info(
            "Turn dispatched",
            extra={
                "context": {
                    "sender": mask_sender(sender_key),
                    "messages": len(turn.messages),
                    "stage": session.stage.value,
                }
            },
        )

        thread_id, created = await self.driver.ensure_thread(session.thread_id)
        if created:
            session = self.sessions.attach_thread(sender_key, thread_id)

        raw_reply = await self.driver.complete(thread_id, turn.text, session.stage, returning=not created)
        reply, pre_order = extract_pre_order(raw_reply)
        if not reply:
            if pre_order is None:
                raise BackendError("no-reply", "reply contained only control markers")
            reply = self.pre_order_confirmation

        previous_stage = session.stage
        session = self.sessions.record_reply(sender_key, raw_reply)

        await self.dispatcher.deliver(sender_key, reply)

        if (
            previous_stage == ConversationStage.INIT
            and session.stage == ConversationStage.WAITING_BUYER_CONFIRMATION
        ):
            await self._notify_admin(sender_key, pre_order)

    async def _notify_admin(self, sender_key: str, pre_order: Optional[PreOrder]) -> None:
        if not self.admin_phone:
            return
        notice = ADMIN_HANDOFF_NOTICE.format(sender=sender_key)
        if pre_order is not None:
            details = ADMIN_PRE_ORDER_DETAILS.format(
                hotel=pre_order.hotel or NOT_PROVIDED,
                contact=pre_order.contact or sender_key,
                qty=pre_order.qty,
                total=pre_order.total,
            )
            notice = f"{notice}\n{details}"
        try:
            await self.dispatcher.deliver(self.admin_phone, notice)
        except DeliveryError as e:
            logger.warning(f"Admin hand-off notice failed: {e.detail}", extra={"context": {"sender": mask_sender(sender_key)}})

    def stats(self) -> dict:
        return {
            "pending_turns": self.buffer.timer_count,
            "active_turns": self.buffer.active_count,
        }

    async def join(self) -> None:
        await self.buffer.join()

    async def aclose(self) -> None:
        await self.buffer.aclose()


def create_orchestrator(
    settings: Settings,
    *,
    backend=None,
    gateway: Optional[OutboundGateway] = None,
    sleep_func: SleepFunc = asyncio.sleep,
) -> TurnOrchestrator:
    """Wire the production orchestrator. Raises ConfigurationError on missing credentials."""
    settings.require_credentials()

    backend = backend or OpenAIAssistantsBackend(
        settings.openai_api_key,
        settings.openai_assistant_id,
        base_url=settings.openai_api_base,
        timeout_seconds=settings.http_timeout_seconds,
    )
    gateway = gateway or ZapiClient(
        settings.zapi_instance_id,
        settings.zapi_token,
        settings.zapi_client_token,
        base_url=settings.zapi_api_url,
        timeout_seconds=settings.http_timeout_seconds,
    )
    classifier = keyword_stage_classifier(
        settings.handoff_phrases,
        settings.contact_name_words,
        settings.contact_phone_words,
    )

    return TurnOrchestrator(
        dedup=DedupFilter(InMemoryStore(ttl=settings.dedup_ttl_seconds, max_entries=settings.dedup_max_entries)),
        gate=ConcurrencyGate(InMemoryStore()),
        sessions=SessionTracker(
            InMemoryStore(ttl=settings.session_ttl_seconds, max_entries=settings.session_max_entries),
            classifier,
        ),
        driver=TurnCompletionDriver(
            backend,
            poll_policy=PollPolicy(
                interval_seconds=settings.run_poll_interval_seconds,
                max_wait_seconds=settings.run_max_wait_seconds,
            ),
            sleep_func=sleep_func,
        ),
        dispatcher=ReplyDispatcher(gateway),
        buffer_store=InMemoryStore(ttl=settings.buffer_ttl_seconds),
        quiet_seconds=settings.debounce_seconds,
        sleep_func=sleep_func,
        admin_phone=normalize_sender_key(settings.admin_phone),
        pre_order_confirmation=settings.pre_order_confirmation,
    )
