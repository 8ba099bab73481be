import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from openai import OpenAI

from ..models import CustomerInfo
from ..prompts.prompt_layer import (
    CALLBACK_TIME_PROMPT,
    DETAILS_EXTRACTION_PROMPT,
    VOICEMAIL_FOLLOWUP_PROMPT,
)
from .time_parser import parse_callback_time

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class ExtractionResult:
    """Tagged result of a details extraction; ``info`` is always usable."""

    ok: bool
    info: CustomerInfo
    error: Optional[str] = None


@dataclass
class TimeInference:
    proposed_time: Optional[datetime] = None
    reschedule_prompt: Optional[str] = None


class IntentExtractor:
    """Extracts customer details and callback times from free text via OpenAI.

    Every public method degrades to a fallback instead of raising: the SMS
    conversation must keep moving even when the model is down or replies
    with something that is not JSON.
    """

    def __init__(self, openai_api_key: str, model: str = "gpt-3.5-turbo",
                 business: str = "", callback_window: str = "1-3 pm"):
        self.openai_client = OpenAI(api_key=openai_api_key) if openai_api_key else None
        self.model = model
        self.business = business
        self.callback_window = callback_window

    async def _complete(self, system_prompt: str, user_content: str, temperature: float = 0) -> str:
        if self.openai_client is None:
            raise RuntimeError("OpenAI not configured")
        response = await asyncio.to_thread(
            self.openai_client.chat.completions.create,
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=temperature,
        )
        return (response.choices[0].message.content or "").strip()

    @staticmethod
    def _parse_json_object(raw: str) -> Optional[Dict[str, Any]]:
        """Best-effort JSON parse; tolerates code fences and chatter around the object."""
        if not raw:
            return None
        match = _JSON_OBJECT.search(raw)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except (json.JSONDecodeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _create_fallback_info(self, text: str) -> CustomerInfo:
        return CustomerInfo(name="Customer", intent="other", description=text)

    async def extract_details(self, text: str) -> ExtractionResult:
        """Extract name, intent and job description from a customer SMS"""
        try:
            raw = await self._complete(DETAILS_EXTRACTION_PROMPT, text)
        except Exception as e:
            logger.error(f"❌ Details extraction failed: {e}")
            return ExtractionResult(ok=False, info=self._create_fallback_info(text), error=str(e))

        data = self._parse_json_object(raw)
        if data is None:
            logger.warning("⚠️ Model returned non-JSON details, falling back.")
            return ExtractionResult(ok=False, info=self._create_fallback_info(text), error="unparseable")

        fallback = self._create_fallback_info(text)
        info = CustomerInfo(
            name=str(data.get("name") or "").strip() or fallback.name,
            intent=str(data.get("intent") or "").strip() or fallback.intent,
            description=str(data.get("description") or "").strip() or fallback.description,
        )
        return ExtractionResult(ok=True, info=info)

    async def infer_callback_time(self, text: str, now: Optional[datetime] = None) -> TimeInference:
        """Ask the model for a callback time when the plain parser found none"""
        prompt = CALLBACK_TIME_PROMPT.format(window=self.callback_window)
        try:
            raw = await self._complete(prompt, f'Customer said: "{text}"')
        except Exception as e:
            logger.error(f"❌ Callback time inference failed: {e}")
            return TimeInference()

        data = self._parse_json_object(raw)
        if data is None:
            # Plain-text answer such as "2:30pm"
            return TimeInference(proposed_time=parse_callback_time(raw, now))

        proposed = parse_callback_time(str(data.get("time") or ""), now)
        if proposed is not None:
            return TimeInference(proposed_time=proposed)
        reschedule = str(data.get("reschedule") or "").strip()
        return TimeInference(reschedule_prompt=reschedule or None)

    async def compose_voicemail_followup(self, transcription: str) -> Optional[str]:
        """Compose one short follow-up SMS for a caller who left a voicemail"""
        prompt = VOICEMAIL_FOLLOWUP_PROMPT.format(business=self.business or "a trade business",
                                                  window=self.callback_window)
        try:
            reply = await self._complete(prompt, f'Transcription of voicemail: "{transcription}"', temperature=0.7)
        except Exception as e:
            logger.error(f"❌ AI follow-up failed: {e}")
            return None
        return reply or None
