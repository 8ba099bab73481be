"""
Twilio webhook server for the tradie front desk.

Routes:
- POST /voice               forward the call to the owner's phone
- POST /voicemail-fallback  record a voicemail when the owner didn't answer
- POST /call-status         call lifecycle events (missed-call follow-up)
- POST /voicemail           recording/transcription callback
- POST /sms                 inbound customer texts (conversation engine)
- GET  /health

Event webhooks are acknowledged straight away and processed in the
background; Twilio retries slow responses and the coordinator absorbs
the duplicates.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response
from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import VoiceResponse

from .adapters.intent_extractor import IntentExtractor
from .adapters.phone_numbers import PhoneNormalizer
from .adapters.sms import SMSAdapter
from .adapters.transcriber import VoicemailTranscriber
from .config.settings import Settings, get_settings
from .core.call_events import CallEventCoordinator
from .core.conversation_engine import ConversationEngine
from .core.conversation_store import ConversationStore
from .core.outbox import Outbox
from .core.pending_calls import PendingCallTracker
from .core.scheduler import AsyncioScheduler
from .exceptions import InvalidEventError
from .models import CallEvent, InboundSms, VoicemailEvent
from .services.record_store import SupabaseRecordStore

logger = logging.getLogger("tradie-assist")

VOICEMAIL_GREETING = "The tradie is unavailable. Please leave a message after the beep."


@dataclass
class FrontDesk:
    """Everything the webhooks need, constructed once per process."""

    store: ConversationStore
    tracker: PendingCallTracker
    scheduler: AsyncioScheduler
    outbox: Outbox
    coordinator: CallEventCoordinator
    engine: ConversationEngine


def build_front_desk(settings: Settings) -> FrontDesk:
    normalizer = PhoneNormalizer(settings.COUNTRY_CODE, settings.SUBSCRIBER_DIGITS)

    sms = SMSAdapter(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN, settings.TWILIO_PHONE)
    records = SupabaseRecordStore(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    extractor = IntentExtractor(
        settings.OPENAI_API_KEY,
        model=settings.EXTRACTION_MODEL,
        business=settings.TRADES_BUSINESS,
        callback_window=settings.CALLBACK_WINDOW,
    )
    transcriber = VoicemailTranscriber(
        settings.OPENAI_API_KEY,
        model=settings.TRANSCRIPTION_MODEL,
        twilio_account_sid=settings.TWILIO_ACCOUNT_SID,
        twilio_auth_token=settings.TWILIO_AUTH_TOKEN,
    )

    store = ConversationStore(settings.CONVERSATION_CHECKPOINT_FILE)
    scheduler = AsyncioScheduler()
    tracker = PendingCallTracker(scheduler, grace_seconds=settings.VOICEMAIL_GRACE_SECONDS)
    outbox = Outbox(
        sms,
        records,
        owner_number=normalizer.normalize(settings.TRADIE_PHONE_NUMBER),
        owner_user_id=settings.OWNER_USER_ID,
        normalizer=normalizer,
    )
    coordinator = CallEventCoordinator(
        store, tracker, outbox, transcriber, extractor,
        tradie_name=settings.TRADIE_NAME,
        business=settings.TRADES_BUSINESS,
        callback_window=settings.CALLBACK_WINDOW,
    )
    engine = ConversationEngine(
        store, outbox, extractor,
        tradie_name=settings.TRADIE_NAME,
        callback_window=settings.CALLBACK_WINDOW,
    )
    return FrontDesk(store, tracker, scheduler, outbox, coordinator, engine)


async def _run_safely(label: str, work: Callable[[], Awaitable[object]]) -> None:
    try:
        await work()
    except Exception as e:
        logger.exception(f"❌ {label} processing failed: {e}")


async def _periodic_flush(desk: FrontDesk, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        desk.store.flush()


async def _periodic_purge(desk: FrontDesk, interval: float, retention: float) -> None:
    while True:
        await asyncio.sleep(interval)
        desk.tracker.purge_stale(retention)
        desk.store.release_idle_locks()


async def _stop(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


def _xml(twiml) -> Response:
    return Response(content=str(twiml), media_type="application/xml")


def create_app(settings: Optional[Settings] = None, desk: Optional[FrontDesk] = None) -> FastAPI:
    settings = settings or get_settings()

    #---------------LOGGING SETUP---------------
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    for warning in settings.validate_startup():
        logger.warning(f"⚠️ {warning}")

    desk = desk or build_front_desk(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        desk.store.load()
        flush_task = None
        if settings.CHECKPOINT_INTERVAL_SECONDS > 0:
            flush_task = asyncio.create_task(_periodic_flush(desk, settings.CHECKPOINT_INTERVAL_SECONDS))
        purge_task = None
        if settings.PURGE_INTERVAL_SECONDS > 0:
            purge_task = asyncio.create_task(_periodic_purge(
                desk, settings.PURGE_INTERVAL_SECONDS, settings.HANDLED_RETENTION_SECONDS
            ))
        logger.info("🚀 Tradie front desk started")
        try:
            yield
        finally:
            await _stop(flush_task)
            await _stop(purge_task)
            await desk.scheduler.drain()
            desk.store.flush()
            logger.info("👋 Tradie front desk stopped")

    app = FastAPI(title="Tradie Front Desk", lifespan=lifespan)
    app.state.desk = desk

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "conversations": len(desk.store),
        }

    #---------------VOICE---------------

    @app.post("/voice")
    async def voice_webhook(request: Request):
        form = await request.form()
        logger.info(f"📞 Incoming call {form.get('CallSid')} from {form.get('From')}")
        resp = VoiceResponse()
        dial = resp.dial(
            timeout=settings.DIAL_TIMEOUT_SECONDS,
            action="/voicemail-fallback",
            method="POST",
        )
        dial.number(settings.TRADIE_PHONE_NUMBER)
        return _xml(resp)

    @app.post("/voicemail-fallback")
    async def voicemail_fallback(request: Request):
        form = await request.form()
        resp = VoiceResponse()
        # Answered calls and the post-recording redirect both just end the call
        if form.get("DialCallStatus") == "completed" or form.get("RecordingUrl"):
            resp.hangup()
            return _xml(resp)

        resp.say(VOICEMAIL_GREETING, voice="alice")
        resp.record(
            max_length=settings.VOICEMAIL_MAX_LENGTH,
            play_beep=True,
            transcribe=True,
            transcribe_callback=f"{settings.BASE_URL.rstrip('/')}/voicemail",
        )
        resp.hangup()
        return _xml(resp)

    #---------------EVENTS---------------

    @app.post("/call-status")
    async def call_status(request: Request, background_tasks: BackgroundTasks):
        form = await request.form()
        try:
            event = CallEvent.from_twilio_form(form)
        except InvalidEventError as e:
            raise HTTPException(status_code=400, detail=str(e))
        background_tasks.add_task(
            _run_safely, "call-status", lambda: desk.coordinator.handle_call_status(event)
        )
        return Response(status_code=200)

    @app.post("/voicemail")
    async def voicemail(request: Request, background_tasks: BackgroundTasks):
        form = await request.form()
        try:
            event = VoicemailEvent.from_twilio_form(form)
        except InvalidEventError as e:
            raise HTTPException(status_code=400, detail=str(e))
        background_tasks.add_task(
            _run_safely, "voicemail", lambda: desk.coordinator.handle_voicemail(event)
        )
        return Response(status_code=200)

    @app.post("/sms")
    async def sms(request: Request, background_tasks: BackgroundTasks):
        form = await request.form()
        try:
            event = InboundSms.from_twilio_form(form)
        except InvalidEventError as e:
            raise HTTPException(status_code=400, detail=str(e))
        background_tasks.add_task(
            _run_safely, "sms", lambda: desk.engine.handle_inbound_sms(event)
        )
        # Replies go out through the REST API once processing finishes
        return _xml(MessagingResponse())

    return app


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "tradie_assist.webhook_server:create_app",
        factory=True,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
