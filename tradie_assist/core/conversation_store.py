import asyncio
import json
import logging
import os
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..models import ConversationOrigin, ConversationState, ConversationStep

logger = logging.getLogger(__name__)

Mutator = Callable[[Optional[ConversationState]], Optional[ConversationState]]


class ConversationStore:
    """Owns the per-caller conversation state, keyed by canonical phone number.

    ``upsert`` is the only mutation path. It holds a per-number lock while the
    mutator runs, so two events for the same caller serialize while events for
    different callers stay independent. Mutators must not await.
    """

    def __init__(self, checkpoint_path: Optional[str] = None):
        self.checkpoint_path = checkpoint_path or None
        self._states: Dict[str, ConversationState] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get(self, phone: str) -> Optional[ConversationState]:
        """Get a copy of the current state for a caller"""
        state = self._states.get(phone)
        return state.model_copy(deep=True) if state is not None else None

    async def upsert(self, phone: str, mutator: Mutator) -> Optional[ConversationState]:
        """Apply ``mutator`` to the current state and commit its result.

        The mutator receives a copy of the current state (or None) and returns
        the next state, or None to leave the stored state untouched.
        """
        async with self._locks[phone]:
            current = self.get(phone)
            updated = mutator(current)
            if updated is None:
                return None
            updated = updated.model_copy(update={
                "phone": phone,
                "revision": (current.revision if current else 0) + 1,
                "updated_at": datetime.now(),
            })
            self._states[phone] = updated
            logger.info(f"📝 Conversation {phone} -> {updated.step.value} (rev {updated.revision})")
            return updated.model_copy(deep=True)

    async def start_conversation(self, phone: str, origin: ConversationOrigin,
                                 call_id: Optional[str] = None, **fields) -> ConversationState:
        """Supersede whatever is stored for ``phone`` with a fresh conversation for a new call.

        The previous conversation's booking (if any) is already persisted, so
        step, customer info, proposed time and the notification guards all reset.
        """
        def _fresh(current: Optional[ConversationState]) -> ConversationState:
            return ConversationState(
                phone=phone,
                step=ConversationStep.AWAITING_DETAILS,
                origin=origin,
                last_call_id=call_id,
                **fields,
            )

        return await self.upsert(phone, _fresh)  # type: ignore[return-value]

    def release_idle_locks(self) -> int:
        """Drop per-number locks nobody holds; they are recreated on demand."""
        idle = [phone for phone, lock in self._locks.items() if not lock.locked()]
        for phone in idle:
            del self._locks[phone]
        return len(idle)

    def phones(self) -> List[str]:
        return list(self._states.keys())

    def __len__(self) -> int:
        return len(self._states)

    #---------------CHECKPOINTING---------------

    def load(self) -> int:
        """Load states from the checkpoint file; returns how many were restored."""
        if not self.checkpoint_path or not os.path.exists(self.checkpoint_path):
            return 0
        try:
            with open(self.checkpoint_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self._states = {
                phone: ConversationState.model_validate(data) for phone, data in raw.items()
            }
            logger.info(f"📂 Loaded {len(self._states)} conversations from {self.checkpoint_path}")
            return len(self._states)
        except Exception as e:
            logger.error(f"❌ Failed to load conversations: {e}")
            return 0

    def flush(self) -> bool:
        """Write all states to the checkpoint file."""
        if not self.checkpoint_path:
            return False
        try:
            payload = {phone: state.model_dump(mode="json") for phone, state in self._states.items()}
            tmp_path = f"{self.checkpoint_path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.checkpoint_path)
            logger.debug(f"Saved {len(payload)} conversations to {self.checkpoint_path}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to save conversations: {e}")
            return False
