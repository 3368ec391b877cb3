import json
import random

import pytest

from mineduel.engine.board import CellState, generate_board, reveal_cell
from mineduel.engine.codec import BoardCodecError, encode_board, decode_board


def test_encode_decode_keeps_layout_and_resets_state():
    board = generate_board(4, 4, rng=random.Random(3))
    decoded = decode_board(encode_board(board))
    for original_row, decoded_row in zip(board, decoded):
        for original, cell in zip(original_row, decoded_row):
            assert cell.is_mine == original.is_mine
            assert cell.adjacent_mines == original.adjacent_mines
            assert cell.state == CellState.UNREVEALED


def test_encode_drops_reveal_state():
    board = generate_board(0, 0, rows=5, cols=5, mine_count=3, rng=random.Random(1))
    played = reveal_cell(board, 0, 0)
    assert encode_board(played) == encode_board(board)


def test_wire_shape():
    board = generate_board(0, 0, rows=2, cols=5, mine_count=1, rng=random.Random(5))
    rows = json.loads(encode_board(board))
    assert len(rows) == 2 and len(rows[0]) == 5
    assert set(rows[0][0]) == {'m', 'a'}
    assert sum(cell['m'] for row in rows for cell in row) == 1


def test_decode_accepts_parsed_rows():
    board = decode_board([[{'m': 0, 'a': 1}, {'m': 1, 'a': 0}]])
    assert board[0][1].is_mine
    assert board[0][0].adjacent_mines == 1


@pytest.mark.parametrize("payload", [
    'not json',
    '[]',
    '{"m": 0}',
    '[[{"m": 0, "a": 0}], []]',
    '[[{"m": 0, "a": 0}], [{"m": 0, "a": 0}, {"m": 0, "a": 0}]]',
    '[[{"m": 2, "a": 0}]]',
    '[[{"m": 0, "a": 9}]]',
    '[[{"m": 0}]]',
    '[[5]]',
    '[[{"m": true, "a": 0}]]',
    '[[{"m": 0, "a": false}]]',
    '[[{"m": 0, "a": 1.0}]]',
])
def test_decode_rejects_malformed_payloads(payload):
    with pytest.raises(BoardCodecError):
        decode_board(payload)
