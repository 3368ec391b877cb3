"""
Base match interface.

A match handles protocol messages from its two players and answers with an
EventResponse; the EventRouter turns responses into Socket.IO emits. Matches
never touch the socket layer directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class EventResponse:
    """
    Response from handling a match event.

    Attributes:
        to_player: Protocol messages per player id, in send order
        error: Error response to send to the sender
    """
    to_player: Dict[str, List[Any]] = field(default_factory=dict)
    error: Dict[str, Any] = field(default_factory=dict)

    def send(self, player_id: str, message) -> 'EventResponse':
        """Queue a protocol message for one player."""
        self.to_player.setdefault(player_id, []).append(message)
        return self

    def messages_for(self, player_id: str) -> List[Any]:
        return list(self.to_player.get(player_id, []))

    def merge(self, other: Optional['EventResponse']) -> 'EventResponse':
        """Merge another EventResponse into this one."""
        if other is None:
            return self
        for player_id, messages in other.to_player.items():
            self.to_player.setdefault(player_id, []).extend(messages)
        self.error.update(other.error)
        return self


@dataclass
class EventContext:
    """
    Context passed to event handlers.

    Attributes:
        session_id: The Socket.IO session ID
        player_id: The sender's player id
        match_id: The match the session is bound to
    """
    session_id: str
    player_id: Optional[str] = None
    match_id: Optional[str] = None


class BaseMatch(ABC):
    """
    Abstract base class for matches.

    Subclasses map protocol message types to handler method names in EVENTS
    and implement the connection lifecycle hooks.
    """

    EVENTS: Dict[str, str] = {}

    @abstractmethod
    def player_connected(self, player_id: str) -> EventResponse:
        """Called when a player's socket joins the match."""

    @abstractmethod
    def player_disconnected(self, player_id: str) -> EventResponse:
        """Called when a player's last socket drops without leaving."""

    @abstractmethod
    def close(self) -> None:
        """Release timers. The match does nothing afterwards."""

    def handle_event(self, message, context: EventContext) -> Optional[EventResponse]:
        """
        Route a parsed protocol message to its handler.

        Args:
            message: A parsed client message
            context: Sender session and player

        Returns:
            EventResponse indicating what to emit, or None
        """
        handler_name = self.EVENTS.get(message.TYPE)
        if handler_name and hasattr(self, handler_name):
            handler = getattr(self, handler_name)
            return handler(message, context)

        return EventResponse(
            error={'code': 'UNKNOWN_EVENT', 'message': f'Unknown event: {message.TYPE}'}
        )

    def get_sanitized_state_data(self) -> Dict[str, Any]:
        """State safe to expose over HTTP. Never includes boards."""
        return {}
