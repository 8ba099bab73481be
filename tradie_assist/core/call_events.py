import logging
from typing import Optional

from ..adapters.transcriber import UNAVAILABLE_PLACEHOLDER, is_placeholder
from ..models import (
    CallEvent,
    CallStatus,
    ConversationOrigin,
    ConversationState,
    MessageRecord,
    VoicemailEvent,
)
from ..prompts.prompt_layer import (
    MISSED_CALL_SMS,
    OWNER_MISSED_CALL,
    OWNER_VOICEMAIL,
    VOICEMAIL_FOLLOWUP_FALLBACK_SMS,
)
from .conversation_store import ConversationStore
from .outbox import Outbox
from .pending_calls import PendingCallTracker

logger = logging.getLogger(__name__)

NO_VOICEMAIL_CONTENT = "[No voicemail]"


class CallEventCoordinator:
    """Turns call-status and voicemail webhooks into at most one follow-up per call.

    Signals for the same CallSid may arrive in any order and more than once.
    The caller-visible "sorry I missed you" text is guarded by the tracker's
    handled set (claimed before any await), the pending-voicemail grace window
    and the conversation's ai_followup_sent flag.
    """

    def __init__(self, store: ConversationStore, tracker: PendingCallTracker, outbox: Outbox,
                 transcriber, extractor, tradie_name: str, business: str,
                 callback_window: str = "1-3 pm"):
        self.store = store
        self.tracker = tracker
        self.outbox = outbox
        self.transcriber = transcriber
        self.extractor = extractor
        self.tradie_name = tradie_name
        self.business = business
        self.callback_window = callback_window

    def _claim(self, call_id: str) -> bool:
        # Calls without a CallSid cannot be deduplicated; always process them
        if not call_id:
            return True
        return self.tracker.mark_handled(call_id)

    #---------------CALL STATUS---------------

    async def handle_call_status(self, event: CallEvent) -> None:
        call_id, phone, status = event.call_id, event.caller_number, event.status
        logger.info(f"[call-status] CallSid={call_id}, status={status}, recording={bool(event.recording_url)}, from={phone}")

        if status in (CallStatus.BUSY.value, CallStatus.NO_ANSWER.value):
            await self.send_missed_call_followup(call_id, phone)
            return

        if status != CallStatus.COMPLETED.value:
            logger.debug(f"[call-status] Ignoring status {status} for CallSid={call_id}")
            return

        if event.recording_url:
            # Voicemail left; the voicemail webhook owns the follow-up
            self.tracker.confirm_voicemail(call_id)
            return

        if not call_id:
            # Without a CallSid no voicemail can be matched to this call
            await self.send_missed_call_followup(call_id, phone)
            return

        if self.tracker.is_handled(call_id) or self.tracker.is_pending(call_id):
            logger.info(f"[call-status] Duplicate completed event for CallSid={call_id}; already handled or pending")
            return

        async def _no_voicemail() -> None:
            await self.send_missed_call_followup(call_id, phone)

        self.tracker.mark_potential_voicemail(call_id, _no_voicemail)

    async def send_missed_call_followup(self, call_id: str, phone: str) -> bool:
        """Text the caller once per call and tell the owner. Returns False if already handled."""
        if not self._claim(call_id):
            logger.info(f"[call-status] CallSid={call_id} already handled; skipping missed-call SMS")
            return False

        logger.info(f"[call-status] CallSid={call_id} sending missed call SMS to {phone}")
        await self.store.start_conversation(
            phone,
            ConversationOrigin.MISSED_CALL_NO_VOICEMAIL,
            call_id=call_id,
            notified_owner=True,
        )
        await self.outbox.text_caller(
            phone, MISSED_CALL_SMS.format(tradie=self.tradie_name, business=self.business)
        )
        await self.outbox.notify_owner(OWNER_MISSED_CALL.format(phone=phone))
        await self.outbox.record_message(MessageRecord(
            from_number=phone,
            type=ConversationOrigin.MISSED_CALL_NO_VOICEMAIL.value,
            content=NO_VOICEMAIL_CONTENT,
        ))
        return True

    #---------------VOICEMAIL---------------

    async def _transcribe(self, event: VoicemailEvent) -> str:
        try:
            transcription = await self.transcriber.transcribe(event.recording_url)
        except Exception as e:
            logger.error(f"❌ Transcription failed: {e}")
            transcription = UNAVAILABLE_PLACEHOLDER
        if is_placeholder(transcription) and event.platform_transcription:
            return event.platform_transcription
        return transcription

    async def handle_voicemail(self, event: VoicemailEvent) -> None:
        call_id, phone = event.call_id, event.caller_number
        logger.info(f"[voicemail] CallSid={call_id} from={phone} recordingUrl={bool(event.recording_url)}")

        if not event.recording_url:
            # Some platforms hit this webhook without a recording
            logger.info(f"[voicemail] CallSid={call_id} has no recording; nothing to do")
            return

        if call_id:
            if not self.tracker.mark_voicemail_received(call_id):
                logger.info(f"[voicemail] Duplicate voicemail webhook for CallSid={call_id}; ignoring")
                return
            self.tracker.confirm_voicemail(call_id)

        if not self._claim(call_id):
            await self._attach_late_voicemail(event)
            return

        transcription = await self._transcribe(event)
        state = await self.store.start_conversation(
            phone,
            ConversationOrigin.VOICEMAIL,
            call_id=call_id,
            transcription=transcription,
            notified_owner=True,
        )
        await self.outbox.notify_owner(OWNER_VOICEMAIL.format(phone=phone, transcription=transcription))
        await self.outbox.record_message(MessageRecord(
            from_number=phone,
            type=ConversationOrigin.VOICEMAIL.value,
            transcription=transcription,
        ))
        if not state.ai_followup_sent:
            await self._send_ai_followup(phone, call_id, transcription)

    async def _send_ai_followup(self, phone: str, call_id: str, transcription: str) -> None:
        def _claim_followup(current: Optional[ConversationState]) -> Optional[ConversationState]:
            if current is None or current.ai_followup_sent or current.last_call_id != call_id:
                return None
            return current.model_copy(update={"ai_followup_sent": True})

        if await self.store.upsert(phone, _claim_followup) is None:
            logger.info(f"[voicemail] Follow-up already sent for {phone}; skipping")
            return

        reply = await self.extractor.compose_voicemail_followup(transcription)
        if not reply:
            reply = VOICEMAIL_FOLLOWUP_FALLBACK_SMS.format(
                tradie=self.tradie_name, business=self.business, window=self.callback_window
            )
        await self.outbox.text_caller(phone, reply)

    async def _attach_late_voicemail(self, event: VoicemailEvent) -> None:
        """Voicemail for a call whose follow-up already went out: keep the text, send nothing."""
        call_id, phone = event.call_id, event.caller_number
        logger.info(f"[voicemail] CallSid={call_id} already handled; storing transcription without notifying")
        transcription = await self._transcribe(event)

        def _attach(state: Optional[ConversationState]) -> Optional[ConversationState]:
            if state is None or state.last_call_id != call_id:
                return None
            return state.model_copy(update={
                "origin": ConversationOrigin.VOICEMAIL,
                "transcription": transcription,
            })

        await self.store.upsert(phone, _attach)
        await self.outbox.record_message(MessageRecord(
            from_number=phone,
            type=ConversationOrigin.VOICEMAIL.value,
            transcription=transcription,
        ))
