"""Client side: match state machine, controller, channels to the authority and the solo game."""

from .state_machine import MatchStateMachine, GameResult
from .match_client import MatchClient
from .pointer import PointerTracker
from .session import ConnectionSession
from .simulated import SimulatedAuthority
from .solo import GamePhase, SoloGame

__all__ = [
    'MatchStateMachine', 'GameResult', 'MatchClient', 'PointerTracker',
    'ConnectionSession', 'SimulatedAuthority', 'GamePhase', 'SoloGame',
]
