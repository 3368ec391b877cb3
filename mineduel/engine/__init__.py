"""Board engine and codec - pure functions, no I/O."""

from .board import (
    ROWS, COLS, MINE_COUNT,
    Board, Cell, CellState, ChordResult,
    board_size, in_bounds, neighbors, create_empty_board, generate_board, reveal_cell, toggle_flag,
    chord_reveal, check_win, reveal_all_mines, count_flags, count_mines,
    count_revealed, flags_remaining, diff_revealed_cells, cooldown_duration,
)
from .codec import BoardCodecError, encode_board, decode_board

__all__ = [
    'ROWS', 'COLS', 'MINE_COUNT',
    'Board', 'Cell', 'CellState', 'ChordResult',
    'board_size', 'in_bounds', 'neighbors', 'create_empty_board', 'generate_board', 'reveal_cell', 'toggle_flag',
    'chord_reveal', 'check_win', 'reveal_all_mines', 'count_flags', 'count_mines',
    'count_revealed', 'flags_remaining', 'diff_revealed_cells', 'cooldown_duration',
    'BoardCodecError', 'encode_board', 'decode_board',
]
