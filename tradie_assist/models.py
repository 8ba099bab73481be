from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .adapters.phone_numbers import normalize_phone
from .exceptions import InvalidEventError


class ConversationStep(str, Enum):
    NEW = "new"
    AWAITING_DETAILS = "awaiting_details"
    SCHEDULING = "scheduling"
    DONE = "done"


class ConversationOrigin(str, Enum):
    MISSED_CALL_NO_VOICEMAIL = "missed_call_no_voicemail"
    VOICEMAIL = "voicemail"


class CallStatus(str, Enum):
    RINGING = "ringing"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    COMPLETED = "completed"


class CustomerInfo(BaseModel):
    name: str = "Customer"
    intent: str = "other"
    description: str = ""


class ConversationState(BaseModel):
    """Where a single caller stands in the SMS conversation.

    One per canonical phone number. Superseded in place when a new call
    arrives from the same number; never deleted.

    ``notified_owner`` only records that the owner was told about the call.
    Repeat notifications are prevented by the call tracker's handled set.
    """

    phone: str
    step: ConversationStep = ConversationStep.NEW
    origin: ConversationOrigin = ConversationOrigin.MISSED_CALL_NO_VOICEMAIL
    transcription: Optional[str] = None
    customer_info: Optional[CustomerInfo] = None
    notified_owner: bool = False
    ai_followup_sent: bool = False
    proposed_time: Optional[datetime] = None
    last_call_id: Optional[str] = None
    revision: int = 0
    updated_at: datetime = Field(default_factory=datetime.now)


class Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    customer_name: str
    intent: str
    details: str
    proposed_time: datetime
    caller_number: str
    created_at: datetime = Field(default_factory=datetime.now)
    status: str = "pending"

    def to_record(self, user_id: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "customer_name": self.customer_name,
            "customer_number": self.caller_number,
            "intent": self.intent,
            "proposed_time": self.proposed_time.isoformat(),
            "notes": self.details,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }


class MessageRecord(BaseModel):
    """Append-only log entry for every inbound voicemail, missed call and SMS."""

    model_config = ConfigDict(frozen=True)

    from_number: str
    type: str
    content: Optional[str] = None
    transcription: Optional[str] = None
    customer_name: Optional[str] = None
    intent: Optional[str] = None
    details: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    def to_record(self, user_id: str) -> Dict[str, Any]:
        record = {
            "user_id": user_id,
            "from_number": self.from_number,
            "type": self.type,
            "created_at": self.created_at.isoformat(),
        }
        for key in ("content", "transcription", "customer_name", "intent", "details"):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        return record


#---------------INBOUND EVENTS---------------

def _required_caller(form: Mapping[str, Any]) -> str:
    caller = normalize_phone(form.get("From") or "")
    if not caller:
        raise InvalidEventError("Missing caller number", field="From")
    return caller


class CallEvent(BaseModel):
    call_id: str
    status: str
    caller_number: str
    recording_url: Optional[str] = None

    @classmethod
    def from_twilio_form(cls, form: Mapping[str, Any]) -> "CallEvent":
        return cls(
            call_id=form.get("CallSid") or "",
            status=(form.get("CallStatus") or "").lower(),
            caller_number=_required_caller(form),
            recording_url=form.get("RecordingUrl") or None,
        )


class VoicemailEvent(BaseModel):
    call_id: str
    caller_number: str
    recording_url: Optional[str] = None
    platform_transcription: Optional[str] = None

    @classmethod
    def from_twilio_form(cls, form: Mapping[str, Any]) -> "VoicemailEvent":
        raw_recording = form.get("RecordingUrl") or ""
        return cls(
            call_id=form.get("CallSid") or "",
            caller_number=_required_caller(form),
            # Twilio serves the raw recording URL as WAV; ask for the mp3
            recording_url=f"{raw_recording}.mp3" if raw_recording else None,
            platform_transcription=form.get("TranscriptionText") or None,
        )


class InboundSms(BaseModel):
    caller_number: str
    text: str

    @classmethod
    def from_twilio_form(cls, form: Mapping[str, Any]) -> "InboundSms":
        caller = _required_caller(form)
        text = (form.get("Body") or "").strip()
        if not text:
            raise InvalidEventError("Missing message body", field="Body")
        return cls(caller_number=caller, text=text)
