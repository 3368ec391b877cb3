"""
Board Engine: pure Minesweeper board operations.

Every function takes a board and returns a new one; the input is never
mutated. Cells are immutable, so a new board shares untouched cells with
the board it was derived from, which keeps diffing and snapshotting cheap.
"""

import random
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

ROWS = 16
COLS = 30
MINE_COUNT = 99

COOLDOWN_BASE_MS = 2000
COOLDOWN_STEP_MS = 2000

NEIGHBOR_OFFSETS = [
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
]


class CellState(str, Enum):
    """Display state of a cell. The last three only appear on a lost board."""
    UNREVEALED = 'unrevealed'
    FLAGGED = 'flagged'
    REVEALED = 'revealed'
    MINE = 'mine'
    MINE_CLICKED = 'mine-clicked'
    MINE_WRONG = 'mine-wrong'


@dataclass(frozen=True)
class Cell:
    is_mine: bool = False
    adjacent_mines: int = 0
    state: CellState = CellState.UNREVEALED


Board = List[List[Cell]]


class ChordResult(NamedTuple):
    hit: bool
    board: Board


def board_size(board: Board) -> Tuple[int, int]:
    """Return (rows, cols) of a board."""
    return len(board), (len(board[0]) if board else 0)


def in_bounds(board: Board, row: int, col: int) -> bool:
    rows, cols = board_size(board)
    return 0 <= row < rows and 0 <= col < cols


def neighbors(row: int, col: int, rows: int, cols: int) -> List[Tuple[int, int]]:
    """Coordinates of the 8-connected neighbours of a cell, clipped to the grid."""
    result = []
    for dr, dc in NEIGHBOR_OFFSETS:
        nr, nc = row + dr, col + dc
        if 0 <= nr < rows and 0 <= nc < cols:
            result.append((nr, nc))
    return result


def _copy(board: Board) -> Board:
    return [list(row) for row in board]


def create_empty_board(rows: int = ROWS, cols: int = COLS) -> Board:
    """All cells unrevealed, no mines."""
    return [[Cell() for _ in range(cols)] for _ in range(rows)]


def generate_board(first_row: int, first_col: int,
                   rows: int = ROWS, cols: int = COLS,
                   mine_count: int = MINE_COUNT,
                   rng: Optional[random.Random] = None) -> Board:
    """
    Generate a board whose mines avoid the first clicked cell.

    The 3x3 neighbourhood of (first_row, first_col), clipped to the grid, is
    the safe zone. Mines are drawn from every other cell with a Fisher-Yates
    shuffle. When the grid is too small to keep the whole safe zone clear, the
    safe zone shrinks to the clicked cell itself.

    Args:
        first_row: Row of the first reveal request.
        first_col: Column of the first reveal request.
        rows: Grid height.
        cols: Grid width.
        mine_count: Exact number of mines to place.
        rng: Random source; pass a seeded ``random.Random`` for repeatable boards.

    Returns:
        A fresh board with every cell unrevealed.

    Raises:
        ValueError: If the first cell is off the grid or the mines do not fit.
    """
    if not (0 <= first_row < rows and 0 <= first_col < cols):
        raise ValueError(f"First click ({first_row}, {first_col}) is outside the {rows}x{cols} grid")

    rng = rng or random.Random()

    safe_zone = set(neighbors(first_row, first_col, rows, cols))
    safe_zone.add((first_row, first_col))
    if rows * cols - len(safe_zone) < mine_count:
        safe_zone = {(first_row, first_col)}
    if rows * cols - len(safe_zone) < mine_count:
        raise ValueError(f"Cannot place {mine_count} mines on a {rows}x{cols} grid")

    candidates = [
        (r, c)
        for r in range(rows)
        for c in range(cols)
        if (r, c) not in safe_zone
    ]

    # Fisher-Yates shuffle
    for i in range(len(candidates) - 1, 0, -1):
        j = rng.randint(0, i)
        candidates[i], candidates[j] = candidates[j], candidates[i]

    mines = set(candidates[:mine_count])

    board: Board = []
    for r in range(rows):
        row_cells = []
        for c in range(cols):
            if (r, c) in mines:
                row_cells.append(Cell(is_mine=True))
            else:
                count = sum(1 for pos in neighbors(r, c, rows, cols) if pos in mines)
                row_cells.append(Cell(adjacent_mines=count))
        board.append(row_cells)
    return board


def reveal_cell(board: Board, row: int, col: int) -> Board:
    """
    Breadth-first flood-fill reveal starting at (row, col).

    A flagged cell is never revealed and stops expansion through it. Every
    visited cell becomes revealed; expansion continues only through non-mine
    cells with zero adjacent mines.
    """
    rows, cols = board_size(board)
    next_board = _copy(board)

    queue = deque([(row, col)])
    visited = {(row, col)}

    while queue:
        r, c = queue.popleft()
        cell = next_board[r][c]

        if cell.state == CellState.FLAGGED:
            continue
        if cell.state != CellState.REVEALED:
            next_board[r][c] = replace(cell, state=CellState.REVEALED)

        if cell.adjacent_mines == 0 and not cell.is_mine:
            for nr, nc in neighbors(r, c, rows, cols):
                if (nr, nc) not in visited and next_board[nr][nc].state == CellState.UNREVEALED:
                    visited.add((nr, nc))
                    queue.append((nr, nc))

    return next_board


def toggle_flag(board: Board, row: int, col: int) -> Board:
    """Toggle unrevealed <-> flagged. Any other state returns the input unchanged."""
    cell = board[row][col]
    if cell.state == CellState.UNREVEALED:
        new_state = CellState.FLAGGED
    elif cell.state == CellState.FLAGGED:
        new_state = CellState.UNREVEALED
    else:
        return board

    next_board = _copy(board)
    next_board[row][col] = replace(cell, state=new_state)
    return next_board


def chord_reveal(board: Board, row: int, col: int) -> Optional[ChordResult]:
    """
    Reveal every unrevealed neighbour of a numbered cell at once.

    Applies only when (row, col) is revealed, has at least one adjacent mine,
    has exactly that many flagged neighbours and has at least one unrevealed
    neighbour. Returns None when any of those does not hold.

    If one of the revealed neighbours is a mine, the result is the loss
    display anchored at that mine with ``hit=True``.
    """
    cell = board[row][col]
    if cell.state != CellState.REVEALED or cell.adjacent_mines == 0:
        return None

    rows, cols = board_size(board)
    flag_count = 0
    candidates = []
    for nr, nc in neighbors(row, col, rows, cols):
        state = board[nr][nc].state
        if state == CellState.FLAGGED:
            flag_count += 1
        elif state == CellState.UNREVEALED:
            candidates.append((nr, nc))

    if flag_count != cell.adjacent_mines or not candidates:
        return None

    for nr, nc in candidates:
        if board[nr][nc].is_mine:
            return ChordResult(hit=True, board=reveal_all_mines(board, nr, nc))

    next_board = board
    for nr, nc in candidates:
        next_board = reveal_cell(next_board, nr, nc)
    return ChordResult(hit=False, board=next_board)


def check_win(board: Board) -> bool:
    """True when every non-mine cell is revealed. Flags are irrelevant."""
    return all(
        cell.is_mine or cell.state == CellState.REVEALED
        for row in board
        for cell in row
    )


def reveal_all_mines(board: Board, clicked_row: int, clicked_col: int) -> Board:
    """Loss display: clicked mine, remaining unflagged mines and wrong flags."""
    next_board = _copy(board)
    for r, row in enumerate(next_board):
        for c, cell in enumerate(row):
            if r == clicked_row and c == clicked_col:
                row[c] = replace(cell, state=CellState.MINE_CLICKED)
            elif cell.is_mine and cell.state != CellState.FLAGGED:
                row[c] = replace(cell, state=CellState.MINE)
            elif not cell.is_mine and cell.state == CellState.FLAGGED:
                row[c] = replace(cell, state=CellState.MINE_WRONG)
    return next_board


def count_flags(board: Board) -> int:
    return sum(1 for row in board for cell in row if cell.state == CellState.FLAGGED)


def count_mines(board: Board) -> int:
    return sum(1 for row in board for cell in row if cell.is_mine)


def count_revealed(board: Board) -> int:
    return sum(1 for row in board for cell in row if cell.state == CellState.REVEALED)


def flags_remaining(board: Board, mine_count: int = MINE_COUNT) -> int:
    """Remaining-flags counter for display, never negative."""
    return max(0, mine_count - count_flags(board))


def diff_revealed_cells(before: Board, after: Board) -> List[Tuple[int, int]]:
    """Cells that are revealed in ``after`` but were not in ``before``, row-major."""
    revealed = []
    for r, (old_row, new_row) in enumerate(zip(before, after)):
        for c, (old, new) in enumerate(zip(old_row, new_row)):
            if old.state != CellState.REVEALED and new.state == CellState.REVEALED:
                revealed.append((r, c))
    return revealed


def cooldown_duration(death_count: int) -> int:
    """
    Cooldown in milliseconds after a mine hit.

    ``death_count`` is the number of deaths before this one, so the first hit
    costs 2000 ms, the second 4000 ms and so on.
    """
    return COOLDOWN_BASE_MS + COOLDOWN_STEP_MS * death_count
