"""
Front desk exceptions

Raised for inbound payloads the service cannot act on. Collaborator failures
are reported as results instead of exceptions.
"""


class TradieAssistError(Exception):
    """Base error for the front desk service"""


class InvalidEventError(TradieAssistError):
    """Raised when an inbound webhook payload is missing required fields"""

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.message = message
        self.field = field
