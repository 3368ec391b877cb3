"""Core server components shared by every match."""

from .timers import RepeatingTimer, TimerGroup
from .session_manager import SessionManager, validate_player_name
from .event_router import EventRouter, player_room

__all__ = ['RepeatingTimer', 'TimerGroup', 'SessionManager', 'validate_player_name', 'EventRouter', 'player_room']
