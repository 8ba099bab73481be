import logging
import time
from dataclasses import dataclass, field
from typing import Dict

from .scheduler import AsyncCallback, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class PendingVoicemailEntry:
    call_id: str
    handle: TimerHandle
    created_at: float = field(default_factory=time.time)


class PendingCallTracker:
    """Per-call bookkeeping for the voicemail grace window and follow-up dedup.

    Three guards live here:
      - pending entries: calls that ended without a recording reference and are
        waiting for a voicemail webhook before being treated as "no voicemail"
      - handled ids: calls whose caller-visible follow-up was already sent, so
        re-delivered webhooks never trigger a second one
      - voicemail ids: voicemail webhooks already processed (platforms retry)

    All methods run on the event loop thread and do not await, so claiming an
    entry (pop) is atomic with respect to other webhook handlers and timers.
    """

    def __init__(self, scheduler, grace_seconds: float = 40.0):
        self.scheduler = scheduler
        self.grace_seconds = grace_seconds
        self.pending: Dict[str, PendingVoicemailEntry] = {}
        self.handled: Dict[str, float] = {}
        self.voicemails: Dict[str, float] = {}

    def mark_potential_voicemail(self, call_id: str, on_timeout: AsyncCallback) -> bool:
        """Start the grace window for ``call_id``. Returns False if one already exists."""
        if call_id in self.pending:
            logger.info(f"⏳ Call {call_id} already awaiting voicemail; ignoring repeat")
            return False

        async def _expire() -> None:
            entry = self.pending.pop(call_id, None)
            if entry is None:
                return
            logger.info(f"⌛ CallSid={call_id} no voicemail within {self.grace_seconds:.0f}s")
            try:
                await on_timeout()
            except Exception as e:
                logger.error(f"❌ No-voicemail follow-up failed for {call_id}: {e}")

        handle = self.scheduler.schedule(self.grace_seconds, _expire)
        self.pending[call_id] = PendingVoicemailEntry(call_id=call_id, handle=handle)
        logger.info(f"⏳ CallSid={call_id} marked as potential voicemail")
        return True

    def confirm_voicemail(self, call_id: str) -> bool:
        """Cancel the grace window because the voicemail arrived. No-op when none is pending."""
        entry = self.pending.pop(call_id, None)
        if entry is None:
            return False
        entry.handle.cancel()
        logger.info(f"🎙️ Cleared pending voicemail for CallSid={call_id}")
        return True

    def is_pending(self, call_id: str) -> bool:
        return call_id in self.pending

    def mark_handled(self, call_id: str) -> bool:
        """Test-and-set: returns False if the call was already handled."""
        if call_id in self.handled:
            return False
        self.handled[call_id] = time.time()
        return True

    def is_handled(self, call_id: str) -> bool:
        return call_id in self.handled

    def mark_voicemail_received(self, call_id: str) -> bool:
        """Test-and-set for voicemail webhooks; returns False on a re-delivery."""
        if call_id in self.voicemails:
            return False
        self.voicemails[call_id] = time.time()
        return True

    def purge_stale(self, max_age_seconds: float = 24 * 60 * 60) -> int:
        """Forget handled call ids and received voicemails older than ``max_age_seconds``."""
        cutoff = time.time() - max_age_seconds
        stale = [call_id for call_id, ts in self.handled.items() if ts < cutoff]
        for call_id in stale:
            self.handled.pop(call_id, None)
        for call_id in [c for c, ts in self.voicemails.items() if ts < cutoff]:
            self.voicemails.pop(call_id, None)
        if stale:
            logger.info(f"🧹 Purged {len(stale)} stale handled calls")
        return len(stale)
