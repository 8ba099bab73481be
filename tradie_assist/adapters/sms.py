import asyncio
import logging
from typing import Any, Dict, Optional

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

logger = logging.getLogger(__name__)


class SMSAdapter:
    """Outbound SMS through Twilio. Failures are reported, never raised or retried."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str,
                 client: Optional[Client] = None):
        self.from_number = from_number
        self.client: Optional[Client] = client

        if self.client is None and all([account_sid, auth_token, from_number]):
            try:
                self.client = Client(account_sid, auth_token)
            except Exception as e:
                logger.error(f"Twilio client init failed: {e}")
                self.client = None

        self.enabled = self.client is not None and bool(from_number)
        if not self.enabled:
            logger.warning("Twilio not configured - missing credentials or from number; SMS will be skipped")

    async def send_sms(self, to_number: str, message: str) -> Dict[str, Any]:
        """Send SMS message using Twilio."""
        if not self.enabled:
            return {"success": False, "error": "SMS not configured"}

        try:
            sent = await asyncio.to_thread(
                self.client.messages.create,  # type: ignore[union-attr]
                body=message,
                from_=self.from_number,
                to=to_number,
            )
            logger.info(f"✅ SMS sent successfully to {to_number}: {sent.sid}")
            return {
                "success": True,
                "message_sid": sent.sid,
                "status": sent.status,
                "to": to_number,
            }
        except TwilioException as e:
            logger.error(f"❌ SMS send failed: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            logger.error(f"❌ SMS send failed: {e}")
            return {"success": False, "error": str(e)}
