"""Authority-side matches."""

from .base_match import BaseMatch, EventResponse, EventContext
from .match_authority import MatchAuthority, PlayerSlot
from .match_registry import MatchRegistry
from .replay import ReplayError, ReplayResult, apply_click, replay_click_log, verify_completion, same_cells

__all__ = [
    'BaseMatch', 'EventResponse', 'EventContext',
    'MatchAuthority', 'PlayerSlot', 'MatchRegistry',
    'ReplayError', 'ReplayResult', 'apply_click', 'replay_click_log', 'verify_completion', 'same_cells',
]
