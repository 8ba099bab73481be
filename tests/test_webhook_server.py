import json
import time

import pytest
from fastapi.testclient import TestClient

from tradie_assist.config.settings import Settings
from tradie_assist.models import ConversationStep
from tradie_assist.webhook_server import FrontDesk, create_app

from tests.fakes import CALLER, OWNER, sms_texts_to


@pytest.fixture
def settings(tmp_path):
    return Settings(
        TRADIE_PHONE_NUMBER=OWNER,
        BASE_URL="https://example.ngrok.io/",
        CONVERSATION_CHECKPOINT_FILE=str(tmp_path / "conversations.json"),
        CHECKPOINT_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def desk(settings, store, tracker, scheduler, outbox, coordinator, engine):
    store.checkpoint_path = settings.CONVERSATION_CHECKPOINT_FILE
    return FrontDesk(store, tracker, scheduler, outbox, coordinator, engine)


@pytest.fixture
def client(settings, desk):
    with TestClient(create_app(settings=settings, desk=desk)) as test_client:
        yield test_client


class TestVoiceRoutes:
    """TwiML responses for incoming calls"""

    def test_voice_dials_owner(self, client):
        response = client.post("/voice", data={"CallSid": "CA1", "From": CALLER})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Dial" in response.text
        assert 'action="/voicemail-fallback"' in response.text
        assert 'timeout="25"' in response.text
        assert f"<Number>{OWNER}</Number>" in response.text

    def test_voicemail_fallback_records_message(self, client):
        response = client.post("/voicemail-fallback", data={"CallSid": "CA1", "DialCallStatus": "no-answer"})

        assert response.status_code == 200
        assert "<Say" in response.text
        assert "leave a message after the beep" in response.text
        assert 'maxLength="60"' in response.text
        assert 'transcribeCallback="https://example.ngrok.io/voicemail"' in response.text
        assert "<Hangup" in response.text

    def test_voicemail_fallback_hangs_up_answered_calls(self, client):
        response = client.post("/voicemail-fallback", data={"CallSid": "CA1", "DialCallStatus": "completed"})

        assert "<Hangup" in response.text
        assert "<Record" not in response.text

    def test_voicemail_fallback_hangs_up_after_recording(self, client):
        response = client.post("/voicemail-fallback", data={
            "CallSid": "CA1",
            "RecordingUrl": "https://api.twilio.com/Recordings/RE1",
        })
        assert "<Record" not in response.text


class TestEventRoutes:
    """Webhooks that are acknowledged immediately and processed in the background"""

    def test_call_status_busy(self, client, sms_adapter):
        response = client.post("/call-status", data={"CallSid": "CA1", "CallStatus": "busy", "From": "0412 345 678"})

        assert response.status_code == 200
        assert len(sms_texts_to(sms_adapter, CALLER)) == 1

    def test_call_status_missing_caller(self, client, sms_adapter):
        response = client.post("/call-status", data={"CallSid": "CA1", "CallStatus": "busy"})

        assert response.status_code == 400
        assert "caller number" in response.json()["detail"]
        sms_adapter.send_sms.assert_not_awaited()

    def test_voicemail_appends_mp3(self, client, transcriber, store):
        response = client.post("/voicemail", data={
            "CallSid": "CA1",
            "From": CALLER,
            "RecordingUrl": "https://api.twilio.com/Recordings/RE1",
            "TranscriptionText": "Hot water leaking",
        })

        assert response.status_code == 200
        transcriber.transcribe.assert_awaited_once_with("https://api.twilio.com/Recordings/RE1.mp3")
        assert store.get(CALLER).step == ConversationStep.AWAITING_DETAILS

    def test_voicemail_missing_caller(self, client):
        response = client.post("/voicemail", data={"CallSid": "CA1", "RecordingUrl": "https://x/RE1"})
        assert response.status_code == 400

    def test_sms_runs_conversation(self, client, store, sms_adapter):
        response = client.post("/sms", data={"From": CALLER, "Body": "Hi it's Sam, my hot water system is leaking"})

        assert response.status_code == 200
        assert "<Response" in response.text
        assert store.get(CALLER).step == ConversationStep.SCHEDULING
        assert sms_texts_to(sms_adapter, CALLER) == ["Thanks Sam! What time works for a call between 1-3 pm?"]

    def test_sms_missing_body(self, client, store):
        response = client.post("/sms", data={"From": CALLER, "Body": "   "})

        assert response.status_code == 400
        assert store.get(CALLER) is None

    def test_background_failure_does_not_surface(self, client, extractor):
        extractor.extract_details.side_effect = None
        extractor.extract_details.return_value = None

        response = client.post("/sms", data={"From": CALLER, "Body": "hello"})
        assert response.status_code == 200


class TestLifecycle:
    """Health check and checkpointing across startup and shutdown"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["conversations"] == 0

    def test_shutdown_flushes_checkpoint(self, settings, desk):
        with TestClient(create_app(settings=settings, desk=desk)) as test_client:
            test_client.post("/sms", data={"From": CALLER, "Body": "Hi it's Sam"})

        with open(settings.CONVERSATION_CHECKPOINT_FILE, encoding="utf-8") as f:
            saved = json.load(f)
        assert saved[CALLER]["step"] == "scheduling"

    def test_startup_loads_checkpoint(self, settings, desk, store):
        with open(settings.CONVERSATION_CHECKPOINT_FILE, "w", encoding="utf-8") as f:
            json.dump({CALLER: {"phone": CALLER, "step": "done", "revision": 4}}, f)

        with TestClient(create_app(settings=settings, desk=desk)):
            assert store.get(CALLER).step == ConversationStep.DONE
            assert store.get(CALLER).revision == 4

    def test_purge_runs_without_checkpointing(self, settings, desk, tracker, store):
        settings = settings.model_copy(update={
            "CHECKPOINT_INTERVAL_SECONDS": 0,
            "PURGE_INTERVAL_SECONDS": 0.01,
            "HANDLED_RETENTION_SECONDS": 60,
        })
        tracker.handled["CA-old"] = time.time() - 3600
        tracker.voicemails["CA-old"] = time.time() - 3600
        tracker.handled["CA-new"] = time.time()

        with TestClient(create_app(settings=settings, desk=desk)):
            deadline = time.time() + 2
            while tracker.is_handled("CA-old") and time.time() < deadline:
                time.sleep(0.02)

        assert not tracker.is_handled("CA-old")
        assert "CA-old" not in tracker.voicemails
        assert tracker.is_handled("CA-new")
