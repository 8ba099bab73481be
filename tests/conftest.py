"""Shared fixtures for the front desk test suites."""

from unittest.mock import AsyncMock, Mock

import pytest

from tradie_assist.adapters.intent_extractor import ExtractionResult, TimeInference
from tradie_assist.adapters.phone_numbers import PhoneNormalizer
from tradie_assist.core.call_events import CallEventCoordinator
from tradie_assist.core.conversation_engine import ConversationEngine
from tradie_assist.core.conversation_store import ConversationStore
from tradie_assist.core.outbox import Outbox
from tradie_assist.core.pending_calls import PendingCallTracker
from tradie_assist.models import CustomerInfo

from tests.fakes import MORNING, OWNER, FakeScheduler


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def sms_adapter():
    adapter = Mock()
    adapter.send_sms = AsyncMock(return_value={"success": True, "message_sid": "SM123"})
    return adapter


@pytest.fixture
def record_store():
    records = Mock()
    records.insert = AsyncMock(return_value={"success": True})
    return records


@pytest.fixture
def normalizer():
    return PhoneNormalizer("61", 9)


@pytest.fixture
def outbox(sms_adapter, record_store, normalizer):
    return Outbox(sms_adapter, record_store, owner_number=OWNER,
                  owner_user_id="owner-uuid", normalizer=normalizer)


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def tracker(scheduler):
    return PendingCallTracker(scheduler, grace_seconds=40)


@pytest.fixture
def extractor():
    mock = Mock()
    mock.extract_details = AsyncMock(return_value=ExtractionResult(
        ok=True,
        info=CustomerInfo(name="Sam", intent="booking", description="hot water system leaking"),
    ))
    mock.infer_callback_time = AsyncMock(return_value=TimeInference())
    mock.compose_voicemail_followup = AsyncMock(return_value="Thanks for the voicemail! What's your name?")
    return mock


@pytest.fixture
def transcriber():
    mock = Mock()
    mock.transcribe = AsyncMock(return_value="Hi it's Sam, my hot water system is leaking")
    return mock


@pytest.fixture
def coordinator(store, tracker, outbox, transcriber, extractor):
    return CallEventCoordinator(store, tracker, outbox, transcriber, extractor,
                                tradie_name="Dave", business="Dave's Plumbing")


@pytest.fixture
def engine(store, outbox, extractor):
    return ConversationEngine(store, outbox, extractor, tradie_name="Dave", clock=lambda: MORNING)
