from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


#---------------CONFIGURATION---------------
# Ensure .env is read from the working directory (if present)
load_dotenv()


class Settings(BaseSettings):
    # Read .env by default. You can also export envs directly.
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Twilio
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE: str = ""  # Assistant number that sends every SMS

    # Business owner
    TRADIE_PHONE_NUMBER: str = ""
    TRADIE_NAME: str = "Dave"
    TRADES_BUSINESS: str = "Dave's Plumbing"
    OWNER_USER_ID: str = "e0a6c24f-8ecf-42fc-b240-7d3e8350e543"

    # Public URL Twilio calls back on (voicemail transcription callback)
    BASE_URL: str = "http://localhost:3000"

    # OpenAI
    OPENAI_API_KEY: str = ""
    EXTRACTION_MODEL: str = "gpt-3.5-turbo"
    TRANSCRIPTION_MODEL: str = "whisper-1"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""

    # Phone numbers (AU mobiles by default: +61 followed by 9 digits)
    COUNTRY_CODE: str = "61"
    SUBSCRIBER_DIGITS: int = 9

    # Call handling
    VOICEMAIL_GRACE_SECONDS: float = 40.0
    DIAL_TIMEOUT_SECONDS: int = 25
    VOICEMAIL_MAX_LENGTH: int = 60
    CALLBACK_WINDOW: str = "1-3 pm"

    # Conversation checkpointing (empty file name disables it)
    CONVERSATION_CHECKPOINT_FILE: str = "conversations.json"
    CHECKPOINT_INTERVAL_SECONDS: float = 0.0

    # Call dedup bookkeeping (runs whether or not checkpointing is enabled)
    HANDLED_RETENTION_SECONDS: float = 24 * 60 * 60
    PURGE_INTERVAL_SECONDS: float = 60 * 60

    # Server
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    def validate_startup(self) -> List[str]:
        """Return warnings for missing credentials. Never raises; the service runs degraded."""
        warnings: List[str] = []
        if not self.TWILIO_ACCOUNT_SID or not self.TWILIO_AUTH_TOKEN or not self.TWILIO_PHONE:
            warnings.append("Twilio not configured - SMS sends will be skipped")
        if not self.TRADIE_PHONE_NUMBER:
            warnings.append("TRADIE_PHONE_NUMBER not set - owner notifications will be skipped")
        if not self.OPENAI_API_KEY:
            warnings.append("OPENAI_API_KEY not set - extraction and transcription will use fallbacks")
        if not self.SUPABASE_URL or not self.SUPABASE_ANON_KEY:
            warnings.append("Supabase not configured - message and booking records will not be stored")
        return warnings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance."""
    return Settings()
