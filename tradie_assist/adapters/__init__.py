"""
Adapters for the external capabilities the front desk consumes:
- Phone number normalization and callback time parsing
- Detail extraction and voicemail transcription (OpenAI)
- Outbound SMS (Twilio)
"""
