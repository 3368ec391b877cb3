"""
Client-side match state machine.

Holds one player's view of a match: their own full board, the revealed-only
projection of the opponent, the death/cooldown counters, the elapsed clock
and the click log. It has no I/O; every method returns the messages that
should go to the authority and leaves delivery and timers to the caller.

Lifecycle: lobby -> countdown -> playing -> finished (terminal).
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..engine.board import (
    MINE_COUNT, Board, CellState,
    reveal_cell, toggle_flag, chord_reveal, check_win,
    count_revealed, diff_revealed_cells, cooldown_duration, flags_remaining,
)
from ..engine.codec import decode_board
from ..protocol.messages import (
    ClientMessage, ServerMessage, RevealMessage, ChordMessage, FlagMessage,
    HitMineMessage, GameCompleteMessage, coords,
)
from ..protocol.types import ClickKind, ClickLogEntry, MatchState

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class GameResult:
    winner: str
    your_time_ms: int
    opponent_time_ms: int
    disconnected: bool = False


class MatchStateMachine:
    """
    One player's match, advanced by server messages, inputs and clock ticks.

    Attributes:
        state: Current MatchState
        board: The player's own board (None until game_start)
        opponent_revealed: Cells the opponent is known to have revealed
        cooldown_ms: Remaining cooldown; inputs are rejected while > 0
        click_log: Ordered record of every accepted input
        result: Final outcome once finished
    """

    COUNTDOWN_SECONDS = 5
    COOLDOWN_TICK_MS = 100
    MAX_ELAPSED_SECONDS = 999

    # Server message type -> handler method name
    MESSAGE_HANDLERS: Dict[str, str] = {
        'match_found': '_on_match_found',
        'countdown': '_on_countdown',
        'game_start': '_on_game_start',
        'opponent_progress': '_on_opponent_progress',
        'opponent_hit_mine': '_on_opponent_hit_mine',
        'game_over': '_on_game_over',
        'opponent_disconnected': '_on_opponent_disconnected',
    }

    def __init__(self, player_name: str, match_id: str = '',
                 clock: Callable[[], int] = None):
        self.player_name = player_name
        self.match_id = match_id
        self._clock = clock or _epoch_ms

        self.state = MatchState.LOBBY
        self.opponent = ''
        self.starting_square: Optional[Tuple[int, int]] = None
        self.board: Optional[Board] = None

        self.opponent_revealed: Set[Tuple[int, int]] = set()
        self.opponent_revealed_count = 0
        self.opponent_death_count = 0

        self.countdown_seconds = self.COUNTDOWN_SECONDS
        self.cooldown_ms = 0
        self.death_count = 0
        self.elapsed_seconds = 0
        self.click_log: List[ClickLogEntry] = []

        self.completed = False
        self.result: Optional[GameResult] = None

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def in_cooldown(self) -> bool:
        return self.cooldown_ms > 0

    @property
    def flags_remaining(self) -> int:
        return flags_remaining(self.board) if self.board else MINE_COUNT

    @property
    def revealed_count(self) -> int:
        return count_revealed(self.board) if self.board else 0

    @property
    def won(self) -> bool:
        return self.result is not None and self.result.winner == self.player_name

    def can_act(self) -> bool:
        return self.state == MatchState.PLAYING and self.board is not None and not self.in_cooldown

    # =========================================================================
    # Server messages
    # =========================================================================

    def handle_message(self, message: ServerMessage) -> List[ClientMessage]:
        """Apply an authority message. Returns messages to send back."""
        handler_name = self.MESSAGE_HANDLERS.get(message.TYPE)
        if not handler_name:
            logger.warning(f"No handler for server message {message.TYPE}")
            return []
        return getattr(self, handler_name)(message) or []

    def _on_match_found(self, message):
        if self.state != MatchState.LOBBY:
            logger.debug(f"Ignoring match_found in state {self.state.value}")
            return
        self.opponent = message.opponent
        self.starting_square = message.starting_square
        if message.match_id:
            self.match_id = message.match_id
        self.countdown_seconds = self.COUNTDOWN_SECONDS
        self.state = MatchState.COUNTDOWN

    def _on_countdown(self, message):
        if self.state == MatchState.COUNTDOWN:
            self.countdown_seconds = message.seconds_remaining

    def _on_game_start(self, message):
        if self.state not in (MatchState.LOBBY, MatchState.COUNTDOWN):
            logger.debug(f"Ignoring game_start in state {self.state.value}")
            return

        dealt = decode_board(message.board)
        self.board = dealt
        self.countdown_seconds = 0
        self.state = MatchState.PLAYING

        if not self.starting_square:
            return []

        # The forced opening move is reported like any other reveal
        row, col = self.starting_square
        self.board = reveal_cell(dealt, row, col)
        opened = diff_revealed_cells(dealt, self.board)
        if not opened:
            return []
        return [RevealMessage(row, col, coords(opened))]

    def _on_opponent_progress(self, message):
        if self.state != MatchState.PLAYING:
            return
        self.opponent_revealed.update((c.row, c.col) for c in message.cells)
        self.opponent_revealed_count = message.revealed_count

    def _on_opponent_hit_mine(self, message):
        if self.state == MatchState.PLAYING:
            self.opponent_death_count = message.death_count

    def _on_game_over(self, message):
        if self.state == MatchState.FINISHED:
            return
        self.state = MatchState.FINISHED
        self.cooldown_ms = 0
        self.result = GameResult(
            winner=message.winner,
            your_time_ms=message.your_time_ms,
            opponent_time_ms=message.opponent_time_ms,
        )

    def _on_opponent_disconnected(self, message):
        if self.state == MatchState.FINISHED:
            return
        self.state = MatchState.FINISHED
        self.cooldown_ms = 0
        self.result = GameResult(
            winner=self.player_name,
            your_time_ms=self.elapsed_seconds * 1000,
            opponent_time_ms=0,
            disconnected=True,
        )

    # =========================================================================
    # Player input
    # =========================================================================

    def reveal(self, row: int, col: int) -> List[ClientMessage]:
        """Left click on a cell."""
        if not self.can_act():
            return []
        cell = self.board[row][col]
        if cell.state in (CellState.REVEALED, CellState.FLAGGED):
            return []

        if cell.is_mine:
            return self._hit_mine(ClickKind.REVEAL, row, col)

        before = self.board
        self.board = reveal_cell(before, row, col)
        self._log(ClickKind.REVEAL, row, col)
        outgoing: List[ClientMessage] = [
            RevealMessage(row, col, coords(diff_revealed_cells(before, self.board)))
        ]
        return outgoing + self._check_complete()

    def chord(self, row: int, col: int) -> List[ClientMessage]:
        """Reveal all neighbours of a numbered cell whose flags are all placed."""
        if not self.can_act():
            return []
        result = chord_reveal(self.board, row, col)
        if result is None:
            return []

        if result.hit:
            # The loss display is not shown; the board stays as it was
            return self._hit_mine(ClickKind.CHORD, row, col)

        before = self.board
        self.board = result.board
        self._log(ClickKind.CHORD, row, col)
        outgoing: List[ClientMessage] = [
            ChordMessage(row, col, coords(diff_revealed_cells(before, self.board)))
        ]
        return outgoing + self._check_complete()

    def flag(self, row: int, col: int) -> List[ClientMessage]:
        """Right click: toggle a flag on an unrevealed cell."""
        if not self.can_act():
            return []
        next_board = toggle_flag(self.board, row, col)
        if next_board is self.board:
            return []
        self.board = next_board
        self._log(ClickKind.FLAG, row, col)
        return [FlagMessage(row, col)]

    def _hit_mine(self, kind: ClickKind, row: int, col: int) -> List[ClientMessage]:
        previous_deaths = self.death_count
        self.death_count += 1
        self.cooldown_ms = cooldown_duration(previous_deaths)
        self._log(kind, row, col)
        logger.info(f"{self.player_name} hit a mine at ({row}, {col}); "
                    f"death {self.death_count}, cooldown {self.cooldown_ms}ms")
        return [HitMineMessage(row, col, self.death_count)]

    def _check_complete(self) -> List[ClientMessage]:
        if self.completed or not check_win(self.board):
            return []
        self.completed = True
        return [GameCompleteMessage(self.elapsed_seconds * 1000, tuple(self.click_log))]

    def _log(self, kind: ClickKind, row: int, col: int):
        self.click_log.append(ClickLogEntry(kind, row, col, self._clock()))

    # =========================================================================
    # Clock ticks
    # =========================================================================

    def tick_elapsed(self) -> bool:
        """One second passed. Returns False once the clock should stop."""
        if self.state != MatchState.PLAYING:
            return False
        self.elapsed_seconds = min(self.elapsed_seconds + 1, self.MAX_ELAPSED_SECONDS)
        return True

    def tick_cooldown(self, step_ms: int = COOLDOWN_TICK_MS) -> bool:
        """Count the cooldown down by one step. Returns False once it reaches zero."""
        if self.cooldown_ms <= 0:
            return False
        self.cooldown_ms = max(0, self.cooldown_ms - step_ms)
        return self.cooldown_ms > 0
