import asyncio
import logging
from typing import Optional

import httpx
from openai import OpenAI

logger = logging.getLogger(__name__)

NO_RECORDING_PLACEHOLDER = "[No recording URL]"
EMPTY_TRANSCRIPTION_PLACEHOLDER = "[Empty transcription]"
UNAVAILABLE_PLACEHOLDER = "[Unavailable]"

PLACEHOLDERS = {NO_RECORDING_PLACEHOLDER, EMPTY_TRANSCRIPTION_PLACEHOLDER, UNAVAILABLE_PLACEHOLDER}


def is_placeholder(text: Optional[str]) -> bool:
    return not text or text in PLACEHOLDERS


class VoicemailTranscriber:
    """Downloads a voicemail recording and transcribes it with Whisper.

    Never raises: failures come back as one of the placeholder strings so the
    voicemail flow always has some text to store and forward.
    """

    def __init__(self, openai_api_key: str, model: str = "whisper-1",
                 twilio_account_sid: str = "", twilio_auth_token: str = "",
                 download_timeout: float = 30.0):
        self.openai_client = OpenAI(api_key=openai_api_key) if openai_api_key else None
        self.model = model
        self.download_timeout = download_timeout
        # Twilio recordings may require HTTP basic auth with the account credentials
        self._auth = (twilio_account_sid, twilio_auth_token) if twilio_account_sid and twilio_auth_token else None

    async def _download(self, recording_url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self.download_timeout, follow_redirects=True) as client:
            response = await client.get(recording_url, auth=self._auth)
            response.raise_for_status()
            return response.content

    async def transcribe(self, recording_url: Optional[str]) -> str:
        if not recording_url:
            return NO_RECORDING_PLACEHOLDER
        if self.openai_client is None:
            logger.warning("Transcription skipped: OpenAI not configured")
            return UNAVAILABLE_PLACEHOLDER
        try:
            audio = await self._download(recording_url)
            transcript = await asyncio.to_thread(
                self.openai_client.audio.transcriptions.create,
                model=self.model,
                file=("voicemail.mp3", audio, "audio/mpeg"),
            )
            text = (getattr(transcript, "text", "") or "").strip()
            if not text:
                return EMPTY_TRANSCRIPTION_PLACEHOLDER
            logger.info(f"📝 Transcribed voicemail ({len(text)} chars)")
            return text
        except Exception as e:
            logger.error(f"❌ Transcription failed for {recording_url}: {e}")
            return UNAVAILABLE_PLACEHOLDER
