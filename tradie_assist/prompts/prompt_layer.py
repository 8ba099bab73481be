DETAILS_EXTRACTION_PROMPT = '''
You are an AI that extracts structured info from a customer SMS sent to a trade business.
Return valid JSON only with:
{
  "name": "...",
  "intent": "quote | booking | other",
  "description": "..."
}'''

CALLBACK_TIME_PROMPT = '''
Extract a valid call time between {window} from the customer message.
Return valid JSON only, either:
{{"time": "2:30pm"}}
or, when the message contains no usable time:
{{"reschedule": "<one short, friendly SMS asking for a time between {window}>"}}'''

VOICEMAIL_FOLLOWUP_PROMPT = '''
You are a concise Aussie tradie assistant for {business}. Ask for name and intent,
offer to schedule a call between {window}. Reply with the SMS text only, under 300 characters.'''

#---------------SMS TEMPLATES---------------

MISSED_CALL_SMS = (
    "G'day, this is {tradie} from {business}. Sorry I missed your call - "
    "can I grab your name and what you're after (quote/booking/other)?"
)

GREETING_SMS = "G'day, this is {tradie}. Can I grab your name and what you're after (quote/booking/other)?"

VOICEMAIL_FOLLOWUP_FALLBACK_SMS = (
    "Thanks for your voicemail! This is {tradie} from {business}. "
    "Can I grab your name and what you're after? Happy to call you back between {window}."
)

ASK_CALLBACK_TIME_SMS = "Thanks {name}! What time works for a call between {window}?"

RESTATE_TIME_SMS = "Sorry, I didn't catch that. What time between {window} works for a call?"

BOOKING_CONFIRMED_SMS = "Sweet, locked in for {time}. {tradie} will call you then ✅"

#---------------OWNER NOTIFICATIONS---------------

OWNER_MISSED_CALL = "⚠️ Missed call from {phone}. Assistant sent follow-up."

OWNER_VOICEMAIL = '🎙️ Voicemail from {phone}: "{transcription}"'

OWNER_DETAILS = """📩 {heading} {phone}
Name: {name}
Intent: {intent}
Details: {details}
Waiting for call time..."""

OWNER_BOOKING = """📅 Customer {name} proposes a call at {time}
Phone: {phone}
Intent: {intent}
Details: {details}"""
