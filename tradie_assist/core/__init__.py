"""
Core call-handling and conversation components.
"""

from .call_events import CallEventCoordinator
from .conversation_engine import ConversationEngine, TurnResult
from .conversation_store import ConversationStore
from .outbox import Outbox
from .pending_calls import PendingCallTracker, PendingVoicemailEntry
from .scheduler import AsyncioScheduler, TimerHandle

__all__ = [
    "AsyncioScheduler",
    "CallEventCoordinator",
    "ConversationEngine",
    "ConversationStore",
    "Outbox",
    "PendingCallTracker",
    "PendingVoicemailEntry",
    "TimerHandle",
    "TurnResult",
]
