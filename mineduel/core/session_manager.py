"""
SessionManager: player identity, connection tickets, and socket sessions.

Shared by every match on the server. Issues single-use connection tickets,
redeems them when a socket connects, and remembers which player and match
each Socket.IO session belongs to. Contains no match logic.
"""

import logging
import re
import secrets
import threading
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

PLAYER_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_]{1,20}$')


def validate_player_name(name) -> Optional[str]:
    """Return the normalized player name, or None if it is not acceptable."""
    if not isinstance(name, str):
        return None
    name = name.strip()
    if not PLAYER_NAME_PATTERN.match(name):
        return None
    return name


class SessionManager:
    """
    Central ticket and session registry.

    Handles:
    - Player name validation
    - Single-use connection tickets with a short TTL
    - Socket session -> (player, match) bindings
    - Periodic cleanup of expired tickets and stale sessions
    """

    # Tickets must be redeemed within this window
    TICKET_TTL_SECONDS = 30

    # Sessions idle longer than this are dropped by cleanup
    SESSION_TTL_SECONDS = 60 * 60

    # How often to run cleanup
    CLEANUP_INTERVAL_SECONDS = 60

    def __init__(self, ticket_ttl_seconds: float = None,
                 clock: Callable[[], float] = time.time,
                 timer_factory=threading.Timer,
                 start_cleanup: bool = True):
        if ticket_ttl_seconds is not None:
            self.TICKET_TTL_SECONDS = ticket_ttl_seconds
        self._clock = clock
        self._timer_factory = timer_factory

        # Using RLock so methods can call other methods that also acquire the lock
        self._lock = threading.RLock()

        self.tickets: Dict[str, dict] = {}   # ticket -> {player_id, expires_at}
        self.sessions: Dict[str, dict] = {}  # session_id -> {player_id, match_id, last_seen}

        self._cleanup_timer: Optional[threading.Timer] = None
        self._shut_down = False

        if start_cleanup:
            self._schedule_cleanup()

        logger.info("SessionManager initialized")

    # =========================================================================
    # Cleanup
    # =========================================================================

    def _schedule_cleanup(self) -> None:
        """Schedule the next cleanup pass."""
        with self._lock:
            if self._shut_down:
                return
            if self._cleanup_timer:
                self._cleanup_timer.cancel()
            self._cleanup_timer = self._timer_factory(
                self.CLEANUP_INTERVAL_SECONDS,
                self._cleanup_stale_sessions
            )
            self._cleanup_timer.daemon = True
            self._cleanup_timer.start()

    def _cleanup_stale_sessions(self) -> None:
        """Drop expired tickets and sessions idle longer than SESSION_TTL_SECONDS."""
        try:
            self.cleanup()
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}")
        finally:
            self._schedule_cleanup()

    def cleanup(self) -> int:
        """Run one cleanup pass. Returns the number of entries removed."""
        now = self._clock()
        with self._lock:
            expired = [t for t, data in self.tickets.items() if data['expires_at'] <= now]
            for ticket in expired:
                del self.tickets[ticket]

            stale = [
                sid for sid, data in self.sessions.items()
                if now - data.get('last_seen', 0) > self.SESSION_TTL_SECONDS
            ]
            for sid in stale:
                del self.sessions[sid]

        removed = len(expired) + len(stale)
        if removed:
            logger.info(f"Cleaned up {len(expired)} expired tickets, {len(stale)} stale sessions")
        return removed

    def shutdown(self) -> None:
        """Stop the cleanup timer."""
        with self._lock:
            self._shut_down = True
            if self._cleanup_timer:
                self._cleanup_timer.cancel()
                self._cleanup_timer = None

    # =========================================================================
    # Tickets
    # =========================================================================

    def issue_ticket(self, player_name: str) -> dict:
        """
        Issue a single-use connection ticket for a player.

        Returns:
            dict with success, ticket, player_id, expires_in
        """
        player_id = validate_player_name(player_name)
        if not player_id:
            return {
                'success': False,
                'message': 'Player name must be 1-20 letters, digits or underscores'
            }

        ticket = secrets.token_urlsafe(24)
        with self._lock:
            self.tickets[ticket] = {
                'player_id': player_id,
                'expires_at': self._clock() + self.TICKET_TTL_SECONDS,
            }

        logger.debug(f"Ticket issued for {player_id}")
        return {
            'success': True,
            'ticket': ticket,
            'player_id': player_id,
            'expires_in': self.TICKET_TTL_SECONDS,
        }

    def redeem_ticket(self, ticket: str) -> Optional[str]:
        """
        Consume a ticket.

        Returns:
            The player id the ticket was issued to, or None if the ticket is
            unknown, already used, or expired
        """
        if not isinstance(ticket, str):
            return None
        with self._lock:
            data = self.tickets.pop(ticket, None)
        if data is None:
            return None
        if data['expires_at'] <= self._clock():
            logger.info(f"Expired ticket presented for {data['player_id']}")
            return None
        return data['player_id']

    # =========================================================================
    # Sessions
    # =========================================================================

    def bind_session(self, session_id: str, player_id: str, match_id: str) -> None:
        """Associate a Socket.IO session with a player in a match."""
        with self._lock:
            self.sessions[session_id] = {
                'player_id': player_id,
                'match_id': match_id,
                'last_seen': self._clock(),
            }
        logger.info(f"Session bound: {session_id} -> {player_id} in match {match_id}")

    def get_session(self, session_id: str) -> Optional[dict]:
        """
        Get session data for a session.

        Returns:
            dict with player_id, match_id or None if not found
        """
        return self.sessions.get(session_id)

    def touch_session(self, session_id: str) -> None:
        """Update the last_seen timestamp for a session."""
        with self._lock:
            if session_id in self.sessions:
                self.sessions[session_id]['last_seen'] = self._clock()

    def unbind_session(self, session_id: str) -> Optional[dict]:
        """Forget a session. Returns its data if it was bound."""
        with self._lock:
            return self.sessions.pop(session_id, None)

    def sessions_for_player(self, match_id: str, player_id: str) -> List[str]:
        """All session ids currently bound to a player in a match."""
        with self._lock:
            return [
                sid for sid, data in self.sessions.items()
                if data['match_id'] == match_id and data['player_id'] == player_id
            ]
