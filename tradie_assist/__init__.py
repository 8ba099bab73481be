"""
TradeAssist Front Desk

Missed-call and voicemail automation for a small trade business:
- Call-status and voicemail webhook coordination
- Voicemail transcription
- Scripted SMS conversation (name, job, callback time)
- Booking records and owner notifications
"""

__version__ = "1.0.0"
__author__ = "TradeAssist Team"
