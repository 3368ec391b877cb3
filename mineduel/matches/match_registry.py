"""
Match Registry: owns every live MatchAuthority, keyed by match id.
"""
import logging
import threading
import uuid
from typing import Any, Callable, Dict, Optional

from .base_match import EventResponse
from .match_authority import MatchAuthority

logger = logging.getLogger(__name__)


class MatchRegistry:
    def __init__(self, countdown_seconds: int = None, grace_seconds: float = None,
                 timer_factory=threading.Timer, rng_factory: Callable = None):
        self.countdown_seconds = countdown_seconds
        self.grace_seconds = grace_seconds
        self.timer_factory = timer_factory
        self.rng_factory = rng_factory
        self._matches: Dict[str, MatchAuthority] = {}
        self._lock = threading.Lock()
        self._emit: Optional[Callable[[str, EventResponse], None]] = None
        self._on_idle: Optional[Callable[[str], None]] = None

    def set_emitter(self, emit: Callable[[str, EventResponse], None],
                    on_idle: Callable[[str], None] = None):
        """
        Where timer-driven responses of every match are delivered.

        ``on_idle`` is told when a finished match stops waiting for a
        dropped player to come back for the result.
        """
        self._emit = emit
        self._on_idle = on_idle

    def _dispatch(self, match_id: str, response: EventResponse):
        if self._emit:
            self._emit(match_id, response)
        else:
            logger.warning(f"No emitter set, dropping response for match {match_id}")

    def _release(self, match_id: str):
        if self._on_idle:
            self._on_idle(match_id)

    def create_match(self, player_a: str, player_b: str, match_id: str = None) -> MatchAuthority:
        """
        Pair two players in a new match.

        Raises:
            ValueError: If the players are the same or the id is taken
        """
        match_id = match_id or str(uuid.uuid4())
        match = MatchAuthority(
            match_id,
            [player_a, player_b],
            self._dispatch,
            rng=self.rng_factory() if self.rng_factory else None,
            countdown_seconds=self.countdown_seconds,
            grace_seconds=self.grace_seconds,
            timer_factory=self.timer_factory,
            on_idle=self._release,
        )
        with self._lock:
            if match_id in self._matches:
                match.close()
                raise ValueError(f"Match {match_id} already exists")
            self._matches[match_id] = match
        logger.info(f"Match created: {match_id} ({player_a} vs {player_b})")
        return match

    def get_match(self, match_id: str) -> Optional[MatchAuthority]:
        """Get a match by id."""
        return self._matches.get(match_id)

    def remove_match(self, match_id: str) -> bool:
        """Close and forget a match."""
        with self._lock:
            match = self._matches.pop(match_id, None)
        if not match:
            return False
        match.close()
        logger.info(f"Match removed: {match_id}")
        return True

    def get_all_matches(self) -> Dict[str, Dict[str, Any]]:
        """Sanitized state of every match."""
        return {mid: m.get_sanitized_state_data() for mid, m in list(self._matches.items())}

    def close_all(self):
        with self._lock:
            matches = list(self._matches.values())
            self._matches.clear()
        for match in matches:
            match.close()
