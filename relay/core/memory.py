"""Server-side conversation memory.

Two layers are kept for the whole process:

* a short-term window of the most recent turns, capped at
  ``max_history_length`` (oldest evicted first);
* a long-term list that only grows, written in full to durable storage
  every time turns are promoted into it and read back once at startup.

Every prompt is built as ``[system] + long-term + recent window + [query]``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence

from relay.core.models import ConversationTurn
from relay.core.storage import TurnStore
from relay.errors import PersistenceError


logger = logging.getLogger(__name__)

DEFAULT_CUE_PHRASES = ("记住", "我会记住")


class PromotionPolicy(Protocol):
    def should_promote(self, user_query: str, assistant_reply: str) -> bool:
        ...


class CuePhrasePolicy:
    """Promote an exchange when either side mentions a cue phrase."""

    def __init__(self, cue_phrases: Sequence[str] = DEFAULT_CUE_PHRASES):
        self.cue_phrases = tuple(p for p in cue_phrases if p)

    def should_promote(self, user_query: str, assistant_reply: str) -> bool:
        return any(
            phrase in user_query or phrase in assistant_reply
            for phrase in self.cue_phrases
        )


class MemoryStore:
    """Owns the short-term window and the long-term list."""

    def __init__(
        self,
        store: TurnStore,
        system_prompt: str,
        max_history_length: int = 10,
        policy: Optional[PromotionPolicy] = None,
    ):
        if max_history_length < 0:
            raise ValueError("max_history_length must be >= 0")
        self.store = store
        self.system_prompt = system_prompt
        self.max_history_length = max_history_length
        self.policy = policy or CuePhrasePolicy()
        self._short_term: Deque[ConversationTurn] = deque(maxlen=max_history_length)
        self._long_term: List[ConversationTurn] = []
        self._lock = threading.RLock()

    @property
    def short_term(self) -> List[ConversationTurn]:
        with self._lock:
            return list(self._short_term)

    @property
    def long_term(self) -> List[ConversationTurn]:
        with self._lock:
            return list(self._long_term)

    def load_long_term_memory(self) -> None:
        """Read the persisted long-term list; start empty if it is missing or broken."""
        try:
            turns = self.store.load()
        except PersistenceError as exc:
            logger.warning("Long-term memory unreadable, starting empty: %s", exc)
            turns = None

        if turns is None:
            logger.warning("No long-term memory found, starting empty")
            turns = []

        with self._lock:
            self._long_term = list(turns)
        logger.info("Loaded %s long-term memory turns", len(turns))

    def compose_context(
        self, user_query: str, recent_limit: Optional[int] = None
    ) -> List[ConversationTurn]:
        limit = self.max_history_length if recent_limit is None else recent_limit
        with self._lock:
            recent = list(self._short_term)[-limit:] if limit > 0 else []
            long_term = list(self._long_term)
        return [
            ConversationTurn.system(self.system_prompt),
            *long_term,
            *recent,
            ConversationTurn.user(user_query),
        ]

    def append_turn(self, turn: ConversationTurn) -> None:
        with self._lock:
            self._short_term.append(turn)

    def maybe_promote(self, user_query: str, assistant_reply: str) -> bool:
        """Copy the exchange into long-term memory if the policy asks for it.

        The in-memory list is updated even when writing it out fails. The
        write is blocking and happens under the store lock; async callers
        run this in a worker thread.

        Returns:
            True if the exchange was promoted.
        """
        if not self.policy.should_promote(user_query, assistant_reply):
            return False

        with self._lock:
            self._long_term.append(ConversationTurn.user(user_query))
            self._long_term.append(ConversationTurn.assistant(assistant_reply))
            snapshot = list(self._long_term)

            try:
                self.store.save(snapshot)
            except PersistenceError:
                logger.exception("Failed to persist long-term memory")

        logger.info("Promoted exchange to long-term memory (%s turns)", len(snapshot))
        return True

    def record_exchange(self, user_query: str, assistant_reply: str) -> bool:
        self.append_turn(ConversationTurn.user(user_query))
        self.append_turn(ConversationTurn.assistant(assistant_reply))
        return self.maybe_promote(user_query, assistant_reply)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "short_term_turns": len(self._short_term),
                "max_history_length": self.max_history_length,
                "long_term_turns": len(self._long_term),
            }
