"""
Board Codec: the wire form of a freshly dealt board.

Each cell becomes ``{"m": 0|1, "a": adjacent_mines}`` in a JSON array of rows.
State is stripped; the payload is only ever sent to the player who owns the
board, before any reveal has happened.
"""

import json
from typing import Any, List, Union

from .board import Board, Cell, CellState


class BoardCodecError(ValueError):
    """Raised when an encoded board cannot be decoded."""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def encode_rows(board: Board) -> List[List[dict]]:
    return [
        [{'m': 1 if cell.is_mine else 0, 'a': cell.adjacent_mines} for cell in row]
        for row in board
    ]


def encode_board(board: Board) -> str:
    """Serialize a board to its JSON wire form."""
    return json.dumps(encode_rows(board), separators=(',', ':'))


def decode_board(payload: Union[str, bytes, List[Any]]) -> Board:
    """
    Rebuild a board from its wire form, every cell unrevealed.

    Accepts the JSON text or the already-parsed list of rows.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise BoardCodecError(f"Board payload is not valid JSON: {e}") from e

    if not isinstance(payload, list) or not payload:
        raise BoardCodecError("Board payload must be a non-empty list of rows")

    width = None
    board: Board = []
    for r, row in enumerate(payload):
        if not isinstance(row, list) or not row:
            raise BoardCodecError(f"Row {r} is not a non-empty list")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise BoardCodecError(f"Row {r} has {len(row)} cells, expected {width}")

        cells = []
        for c, raw in enumerate(row):
            try:
                mine = raw['m']
                adjacent = raw['a']
            except (KeyError, TypeError) as e:
                raise BoardCodecError(f"Cell ({r}, {c}) is malformed: {raw!r}") from e
            if not _is_int(mine) or mine not in (0, 1) or not _is_int(adjacent) or not 0 <= adjacent <= 8:
                raise BoardCodecError(f"Cell ({r}, {c}) has invalid values: {raw!r}")
            cells.append(Cell(is_mine=mine == 1, adjacent_mines=adjacent, state=CellState.UNREVEALED))
        board.append(cells)
    return board
