import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..adapters.intent_extractor import ExtractionResult, TimeInference
from ..adapters.time_parser import format_callback_time, parse_callback_time
from ..models import (
    Booking,
    ConversationOrigin,
    ConversationState,
    ConversationStep,
    CustomerInfo,
    InboundSms,
    MessageRecord,
)
from ..prompts.prompt_layer import (
    ASK_CALLBACK_TIME_SMS,
    BOOKING_CONFIRMED_SMS,
    GREETING_SMS,
    OWNER_BOOKING,
    OWNER_DETAILS,
    RESTATE_TIME_SMS,
)
from .conversation_store import ConversationStore
from .outbox import Outbox

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """What one inbound SMS did to the conversation."""

    reply: str
    step: ConversationStep
    booking: Optional[Booking] = None


@dataclass
class _Transition:
    next_state: Optional[ConversationState]
    reply: str
    owner_message: Optional[str] = None
    message: Optional[MessageRecord] = None
    booking: Optional[Booking] = None


def _revision(state: Optional[ConversationState]) -> Optional[int]:
    return state.revision if state is not None else None


class ConversationEngine:
    """Per-caller SMS state machine: awaiting_details -> scheduling -> done.

    A turn reads a snapshot, runs the slow model calls without holding the
    caller's lock, then commits only if the stored revision still matches the
    snapshot. On a conflict the SMS is re-processed against the fresh state;
    the final attempt lays its step and customer details over the latest
    state instead of replacing it. Side effects run after commit.
    """

    def __init__(self, store: ConversationStore, outbox: Outbox, extractor,
                 tradie_name: str, callback_window: str = "1-3 pm",
                 clock: Optional[Callable[[], datetime]] = None, max_attempts: int = 3):
        self.store = store
        self.outbox = outbox
        self.extractor = extractor
        self.tradie_name = tradie_name
        self.callback_window = callback_window
        self.clock = clock or datetime.now
        self.max_attempts = max(1, max_attempts)

    async def handle_inbound_sms(self, event: InboundSms) -> TurnResult:
        phone, text = event.caller_number, event.text
        logger.info(f"💬 SMS from {phone}: {text!r}")

        for attempt in range(1, self.max_attempts + 1):
            snapshot = self.store.get(phone)
            transition = await self._decide(phone, text, snapshot)
            force = attempt == self.max_attempts
            committed = await self._commit(phone, snapshot, transition, force)
            if committed is not False:
                break
            logger.info(f"🔁 Conversation {phone} changed mid-turn; re-processing (attempt {attempt})")

        await self._apply_effects(phone, transition)

        step = committed.step if isinstance(committed, ConversationState) else (
            snapshot.step if snapshot is not None else ConversationStep.AWAITING_DETAILS
        )
        return TurnResult(reply=transition.reply, step=step, booking=transition.booking)

    async def _commit(self, phone: str, snapshot: Optional[ConversationState],
                      transition: _Transition, force: bool):
        """Returns the committed state, None when nothing changed, or False on a revision conflict."""
        conflict = False

        def _apply(current: Optional[ConversationState]) -> Optional[ConversationState]:
            nonlocal conflict
            if _revision(current) == _revision(snapshot):
                return transition.next_state
            if not force:
                conflict = True
                return None
            if current is None or transition.next_state is None:
                return transition.next_state
            # Out of attempts: keep whatever a newer call wrote, apply only this turn's progress
            return current.model_copy(update={
                "step": transition.next_state.step,
                "customer_info": transition.next_state.customer_info,
                "proposed_time": transition.next_state.proposed_time,
            })

        committed = await self.store.upsert(phone, _apply)
        if conflict:
            return False
        return committed

    async def _apply_effects(self, phone: str, transition: _Transition) -> None:
        if transition.owner_message:
            await self.outbox.notify_owner(transition.owner_message)
        if transition.message is not None:
            await self.outbox.record_message(transition.message)
        if transition.booking is not None:
            await self.outbox.record_booking(transition.booking)
        await self.outbox.text_caller(phone, transition.reply)

    #---------------STEPS---------------

    async def _decide(self, phone: str, text: str,
                      snapshot: Optional[ConversationState]) -> _Transition:
        if snapshot is None or snapshot.step in (ConversationStep.NEW, ConversationStep.AWAITING_DETAILS):
            base = snapshot or ConversationState(phone=phone)
            return await self._collect_details(phone, text, base)
        if snapshot.step == ConversationStep.SCHEDULING:
            return await self._schedule(phone, text, snapshot)
        return self._restart(snapshot)

    def _details_text(self, state: ConversationState, info: CustomerInfo) -> str:
        details = info.description
        if state.origin == ConversationOrigin.VOICEMAIL and state.transcription:
            details = f"{details} (Voicemail: {state.transcription})"
        return details

    async def _extract(self, text: str) -> ExtractionResult:
        try:
            return await self.extractor.extract_details(text)
        except Exception as e:
            logger.error(f"❌ Details extraction raised: {e}")
            return ExtractionResult(ok=False, info=CustomerInfo(description=text), error=str(e))

    async def _collect_details(self, phone: str, text: str, state: ConversationState) -> _Transition:
        result = await self._extract(text)
        info = result.info
        details = self._details_text(state, info)
        heading = "Voicemail from" if state.origin == ConversationOrigin.VOICEMAIL else "Missed call from"

        return _Transition(
            next_state=state.model_copy(update={
                "step": ConversationStep.SCHEDULING,
                "customer_info": info,
            }),
            reply=ASK_CALLBACK_TIME_SMS.format(name=info.name, window=self.callback_window),
            owner_message=OWNER_DETAILS.format(
                heading=heading, phone=phone, name=info.name, intent=info.intent, details=details
            ),
            message=MessageRecord(
                from_number=phone,
                type=state.origin.value,
                content=text,
                transcription=state.transcription,
                customer_name=info.name,
                intent=info.intent,
                details=details,
            ),
        )

    async def _infer_time(self, text: str, now: datetime) -> TimeInference:
        try:
            return await self.extractor.infer_callback_time(text, now)
        except Exception as e:
            logger.error(f"❌ Callback time inference raised: {e}")
            return TimeInference()

    async def _schedule(self, phone: str, text: str, state: ConversationState) -> _Transition:
        now = self.clock()
        proposed = parse_callback_time(text, now)
        reschedule_prompt = None
        if proposed is None:
            inference = await self._infer_time(text, now)
            proposed, reschedule_prompt = inference.proposed_time, inference.reschedule_prompt

        if proposed is None:
            logger.info(f"🕑 No usable time from {phone}; asking again")
            return _Transition(
                next_state=None,
                reply=reschedule_prompt or RESTATE_TIME_SMS.format(window=self.callback_window),
            )

        info = state.customer_info or CustomerInfo()
        details = self._details_text(state, info)
        when = format_callback_time(proposed)
        return _Transition(
            next_state=state.model_copy(update={
                "step": ConversationStep.DONE,
                "proposed_time": proposed,
            }),
            reply=BOOKING_CONFIRMED_SMS.format(time=when, tradie=self.tradie_name),
            owner_message=OWNER_BOOKING.format(
                name=info.name, time=when, phone=phone, intent=info.intent, details=details
            ),
            booking=Booking(
                customer_name=info.name,
                intent=info.intent,
                details=details,
                proposed_time=proposed,
                caller_number=phone,
            ),
        )

    def _restart(self, state: ConversationState) -> _Transition:
        # A finished conversation starts a new inquiry instead of going quiet
        return _Transition(
            next_state=state.model_copy(update={
                "step": ConversationStep.AWAITING_DETAILS,
                "origin": ConversationOrigin.MISSED_CALL_NO_VOICEMAIL,
                "transcription": None,
                "customer_info": None,
                "proposed_time": None,
                "notified_owner": False,
                "ai_followup_sent": False,
            }),
            reply=GREETING_SMS.format(tradie=self.tradie_name),
        )
