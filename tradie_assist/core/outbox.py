import logging
from typing import Any, Dict

from ..adapters.phone_numbers import PhoneNormalizer
from ..models import Booking, MessageRecord
from ..services.record_store import APPOINTMENTS_TABLE, MESSAGES_TABLE

logger = logging.getLogger(__name__)


class Outbox:
    """Side effects of the conversation: texts to callers and owner, and records.

    Sends to numbers that fail the subscriber check are skipped with a warning;
    a bad caller ID must never crash a flow. Adapter failures are logged and
    swallowed so the state machine always advances.
    """

    def __init__(self, sms_adapter, record_store, owner_number: str, owner_user_id: str,
                 normalizer: PhoneNormalizer):
        self.sms = sms_adapter
        self.records = record_store
        self.owner_number = owner_number
        self.owner_user_id = owner_user_id
        self.normalizer = normalizer

    async def _send(self, to_number: str, body: str, label: str) -> bool:
        if not self.normalizer.is_valid_subscriber_number(to_number):
            logger.warning(f"⚠️ Skipping {label} SMS: {to_number!r} is not a valid subscriber number")
            return False
        try:
            result: Dict[str, Any] = await self.sms.send_sms(to_number, body)
        except Exception as e:
            logger.error(f"❌ {label} SMS to {to_number} failed: {e}")
            return False
        if not result.get("success"):
            logger.error(f"❌ {label} SMS to {to_number} failed: {result.get('error')}")
            return False
        return True

    async def text_caller(self, phone: str, body: str) -> bool:
        return await self._send(phone, body, "caller")

    async def notify_owner(self, body: str) -> bool:
        return await self._send(self.owner_number, body, "owner")

    async def _insert(self, table: str, record: Dict[str, Any]) -> bool:
        try:
            result = await self.records.insert(table, record)
        except Exception as e:
            logger.error(f"❌ Insert into {table} failed: {e}")
            return False
        return bool(result.get("success"))

    async def record_message(self, message: MessageRecord) -> bool:
        return await self._insert(MESSAGES_TABLE, message.to_record(self.owner_user_id))

    async def record_booking(self, booking: Booking) -> bool:
        return await self._insert(APPOINTMENTS_TABLE, booking.to_record(self.owner_user_id))
