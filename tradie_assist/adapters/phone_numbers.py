import re
from typing import Optional

from ..config import get_settings

_NON_DIGITS = re.compile(r"\D")


class PhoneNormalizer:
    """Canonicalizes caller numbers so every lookup uses the same key.

    The canonical form is ``+<country code><subscriber number>``. Malformed
    input is never rejected here; it simply comes out unvalidated, and
    ``is_valid_subscriber_number`` decides whether it is safe to use.
    """

    def __init__(self, country_code: str = "61", subscriber_digits: int = 9):
        self.country_code = country_code
        self.subscriber_digits = subscriber_digits
        self._valid_pattern = re.compile(rf"^\+{re.escape(country_code)}[0-9]{{{subscriber_digits}}}$")

    def normalize(self, raw: Optional[str]) -> str:
        if not raw:
            return ""
        raw = raw.strip()
        cleaned = _NON_DIGITS.sub("", raw)
        if not cleaned:
            return ""
        if cleaned.startswith("0"):
            return f"+{self.country_code}{cleaned[1:]}"
        if cleaned.startswith(self.country_code):
            return f"+{cleaned}"
        if raw.startswith("+"):
            # Foreign number: keep its own country code, drop formatting
            return f"+{cleaned}"
        return f"+{self.country_code}{cleaned}"

    def is_valid_subscriber_number(self, phone: Optional[str]) -> bool:
        if not phone:
            return False
        return bool(self._valid_pattern.match(phone))


_default_normalizer: Optional[PhoneNormalizer] = None


def get_phone_normalizer() -> PhoneNormalizer:
    global _default_normalizer
    if _default_normalizer is None:
        settings = get_settings()
        _default_normalizer = PhoneNormalizer(settings.COUNTRY_CODE, settings.SUBSCRIBER_DIGITS)
    return _default_normalizer


def normalize_phone(raw: Optional[str]) -> str:
    """Quick function to normalize with the configured country code."""
    return get_phone_normalizer().normalize(raw)


def is_valid_subscriber_number(phone: Optional[str]) -> bool:
    """Quick function to validate against the configured subscriber format."""
    return get_phone_normalizer().is_valid_subscriber_number(phone)
