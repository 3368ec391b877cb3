"""
SoloGame: classic single-player Minesweeper on the same board engine.

No authority and no opponent. The board is generated on the first reveal so
that click is always safe; hitting a mine ends the game at once.
"""

import logging
import random
import threading
from enum import Enum
from typing import Callable, Optional

from ..core.timers import RepeatingTimer
from ..engine.board import (
    ROWS, COLS, MINE_COUNT, Board, CellState,
    in_bounds, create_empty_board, generate_board, reveal_cell, toggle_flag,
    chord_reveal, check_win, reveal_all_mines, flags_remaining,
)
from . import pointer
from .pointer import PointerTracker

logger = logging.getLogger(__name__)


class GamePhase(str, Enum):
    IDLE = 'idle'
    PLAYING = 'playing'
    WON = 'won'
    LOST = 'lost'


class SoloGame:
    """
    Single-player game controller.

    Args:
        rows, cols, mine_count: Board dimensions
        rng: Random source for mine placement
        timer_factory: threading.Timer compatible factory
        on_update: Called with the game after every change
    """

    MAX_ELAPSED_SECONDS = 999

    def __init__(self, rows: int = ROWS, cols: int = COLS, mine_count: int = MINE_COUNT,
                 rng: Optional[random.Random] = None,
                 timer_factory=threading.Timer,
                 on_update: Callable[['SoloGame'], None] = None):
        self.rows = rows
        self.cols = cols
        self.mine_count = mine_count
        self.pointer = PointerTracker()
        self._rng = rng or random.Random()
        self._on_update = on_update
        self._lock = threading.RLock()
        self._elapsed_timer = RepeatingTimer(1.0, self._on_elapsed_tick, timer_factory, name='solo-elapsed')

        self.board: Board = create_empty_board(rows, cols)
        self.phase = GamePhase.IDLE
        self.elapsed_seconds = 0

    @property
    def flags_remaining(self) -> int:
        return flags_remaining(self.board, self.mine_count)

    @property
    def finished(self) -> bool:
        return self.phase in (GamePhase.WON, GamePhase.LOST)

    def reset(self):
        """Back to an empty board, clock at zero."""
        with self._lock:
            self._elapsed_timer.stop()
            self.board = create_empty_board(self.rows, self.cols)
            self.phase = GamePhase.IDLE
            self.elapsed_seconds = 0
            self.pointer.reset()
        self._notify()

    def close(self):
        self._elapsed_timer.stop()

    # =========================================================================
    # Input
    # =========================================================================

    def reveal(self, row: int, col: int) -> bool:
        """Open a cell. Returns True if anything changed."""
        with self._lock:
            if self.finished or not in_bounds(self.board, row, col):
                return False
            if self.board[row][col].state != CellState.UNREVEALED:
                return False

            if self.phase == GamePhase.IDLE:
                self.board = generate_board(row, col, self.rows, self.cols,
                                            self.mine_count, rng=self._rng)
                self.phase = GamePhase.PLAYING
                self._elapsed_timer.start()

            if self.board[row][col].is_mine:
                self.board = reveal_all_mines(self.board, row, col)
                self._end(GamePhase.LOST)
            else:
                self.board = reveal_cell(self.board, row, col)
                if check_win(self.board):
                    self._end(GamePhase.WON)
        self._notify()
        return True

    def toggle_flag(self, row: int, col: int) -> bool:
        with self._lock:
            if self.phase != GamePhase.PLAYING or not in_bounds(self.board, row, col):
                return False
            before = self.board
            self.board = toggle_flag(before, row, col)
            changed = self.board is not before
        if changed:
            self._notify()
        return changed

    def chord(self, row: int, col: int) -> bool:
        with self._lock:
            if self.phase != GamePhase.PLAYING or not in_bounds(self.board, row, col):
                return False
            result = chord_reveal(self.board, row, col)
            if result is None:
                return False

            self.board = result.board
            if result.hit:
                self._end(GamePhase.LOST)
            elif check_win(self.board):
                self._end(GamePhase.WON)
        self._notify()
        return True

    def toggle_or_chord(self, row: int, col: int) -> bool:
        """Space bar: chord a revealed number, otherwise toggle a flag."""
        if not in_bounds(self.board, row, col):
            return False
        if self.board[row][col].state == CellState.REVEALED:
            return self.chord(row, col)
        return self.toggle_flag(row, col)

    def press(self, button: str, row: int, col: int) -> bool:
        if self.pointer.press(button) == pointer.FLAG:
            return self.toggle_flag(row, col)
        return False

    def release(self, button: str, row: int, col: int) -> bool:
        action = self.pointer.release(button)
        if action == pointer.CHORD:
            return self.chord(row, col)
        if action == pointer.REVEAL:
            return self.reveal(row, col)
        return False

    def pointer_left(self):
        self.pointer.reset()

    # =========================================================================
    # Internals
    # =========================================================================

    def _end(self, phase: GamePhase):
        self.phase = phase
        self._elapsed_timer.stop()
        logger.info(f"Solo game {phase.value} after {self.elapsed_seconds}s")

    def _notify(self):
        if self._on_update:
            self._on_update(self)

    def _on_elapsed_tick(self) -> bool:
        with self._lock:
            if self.phase != GamePhase.PLAYING:
                return False
            self.elapsed_seconds = min(self.elapsed_seconds + 1, self.MAX_ELAPSED_SECONDS)
        self._notify()
        return True
