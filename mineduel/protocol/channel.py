"""
SyncChannel: the client's view of the authority.

The real Socket.IO connection and the offline simulated opponent both
implement this interface, so the client match logic never knows which one
it is talking to.
"""

from abc import ABC, abstractmethod
from typing import Callable

from .messages import ClientMessage, ServerMessage
from .types import ConnectionState

MessageHandler = Callable[[ServerMessage], None]


class SyncChannel(ABC):
    """Bidirectional message channel between one client and the authority."""

    connection_state: ConnectionState = ConnectionState.CONNECTING

    @abstractmethod
    def open(self, on_message: MessageHandler) -> None:
        """Start delivering authority messages to ``on_message``."""

    @abstractmethod
    def send(self, message: ClientMessage) -> None:
        """Send a message to the authority, queuing it if necessary."""

    @abstractmethod
    def disconnect(self) -> None:
        """Intentionally close the channel. No reconnection follows."""
