"""
Click-log replay for completion verification.

Rebuilds a player's board from the dealt layout and their click log so the
authority can confirm that a reported completion is actually reachable.
"""

import logging
from typing import Iterable, List, NamedTuple, Sequence, Tuple

from ..engine.board import (
    Board, CellState, in_bounds, reveal_cell, toggle_flag, chord_reveal, check_win,
)
from ..protocol.types import ClickKind, ClickLogEntry, Coord

logger = logging.getLogger(__name__)


class ReplayError(ValueError):
    """The click log cannot have come from a legitimate client."""


class ReplayResult(NamedTuple):
    board: Board
    death_count: int


def apply_click(board: Board, kind: ClickKind, row: int, col: int) -> Tuple[Board, bool]:
    """
    Apply one input the way the client does.

    Returns:
        (next_board, hit) where ``hit`` means the input struck a mine and the
        board was left unchanged
    """
    if kind == ClickKind.FLAG:
        return toggle_flag(board, row, col), False

    if kind == ClickKind.CHORD:
        result = chord_reveal(board, row, col)
        if result is None:
            return board, False
        if result.hit:
            return board, True
        return result.board, False

    cell = board[row][col]
    if cell.state in (CellState.REVEALED, CellState.FLAGGED):
        return board, False
    if cell.is_mine:
        return board, True
    return reveal_cell(board, row, col), False


def replay_click_log(initial_board: Board, starting_square: Tuple[int, int],
                     click_log: Iterable[ClickLogEntry]) -> ReplayResult:
    """
    Replay a click log on a freshly dealt board.

    The starting square is revealed first, then every entry in order.

    Raises:
        ReplayError: If an entry is off the board or timestamps go backwards.
    """
    row, col = starting_square
    if not in_bounds(initial_board, row, col):
        raise ReplayError(f"Starting square {starting_square} is off the board")
    board = reveal_cell(initial_board, row, col)

    deaths = 0
    last_ts = None
    for index, entry in enumerate(click_log):
        if not in_bounds(board, entry.row, entry.col):
            raise ReplayError(f"Entry {index} at ({entry.row}, {entry.col}) is off the board")
        if last_ts is not None and entry.ts < last_ts:
            raise ReplayError(f"Entry {index} timestamp {entry.ts} is before {last_ts}")
        last_ts = entry.ts

        board, hit = apply_click(board, entry.kind, entry.row, entry.col)
        if hit:
            deaths += 1

    return ReplayResult(board, deaths)


def verify_completion(initial_board: Board, starting_square: Tuple[int, int],
                      click_log: Sequence[ClickLogEntry]) -> bool:
    """True if replaying the click log clears every safe cell."""
    try:
        result = replay_click_log(initial_board, starting_square, click_log)
    except ReplayError as e:
        logger.warning(f"Click log rejected: {e}")
        return False
    return check_win(result.board)


def same_cells(reported: Iterable[Coord], expected: List[Tuple[int, int]]) -> bool:
    """Compare reported result cells against a recomputation, ignoring order."""
    reported_set = {(c.row, c.col) for c in reported}
    return reported_set == set(expected)
