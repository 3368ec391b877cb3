import itertools

from mineduel.client.state_machine import MatchStateMachine
from mineduel.engine.board import CellState
from mineduel.engine.codec import encode_board
from mineduel.protocol import (
    ClickKind, Coord, MatchState,
    RevealMessage, ChordMessage, FlagMessage, HitMineMessage, GameCompleteMessage,
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage, OpponentDisconnectedMessage,
)

from conftest import build_board

# (0, 2) is blank: starting there opens (0, 1), (0, 2), (1, 1), (1, 2).
# Revealing (2, 0) afterwards clears the board.
LAYOUT = (
    "*..",
    "...",
    "..*",
)


def started_machine():
    machine = MatchStateMachine('alice', clock=itertools.count(1000, 10).__next__)
    machine.handle_message(MatchFoundMessage('bob', (0, 2), 'm-1'))
    outgoing = machine.handle_message(GameStartMessage(encode_board(build_board(*LAYOUT))))
    return machine, outgoing


def test_lobby_to_countdown_to_playing():
    machine = MatchStateMachine('alice')
    assert machine.state == MatchState.LOBBY

    machine.handle_message(MatchFoundMessage('bob', (0, 2), 'm-1'))
    assert machine.state == MatchState.COUNTDOWN
    assert machine.opponent == 'bob'
    assert machine.match_id == 'm-1'

    machine.handle_message(CountdownMessage(3))
    assert machine.countdown_seconds == 3

    machine.handle_message(GameStartMessage(encode_board(build_board(*LAYOUT))))
    assert machine.state == MatchState.PLAYING


def test_game_start_auto_reveals_starting_square():
    machine, outgoing = started_machine()
    assert outgoing == [RevealMessage(0, 2, (Coord(0, 1), Coord(0, 2), Coord(1, 1), Coord(1, 2)))]
    assert machine.board[0][2].state == CellState.REVEALED
    assert machine.revealed_count == 4
    # The forced opening is not a player input
    assert machine.click_log == []


def test_input_ignored_outside_playing():
    machine = MatchStateMachine('alice')
    assert machine.reveal(0, 0) == []
    assert machine.flag(0, 0) == []
    assert machine.chord(0, 0) == []


def test_reveal_reports_cells_and_completes():
    machine, _ = started_machine()
    machine.elapsed_seconds = 42

    outgoing = machine.reveal(2, 0)
    assert outgoing[0] == RevealMessage(2, 0, (Coord(1, 0), Coord(2, 0), Coord(2, 1)))
    complete = outgoing[1]
    assert isinstance(complete, GameCompleteMessage)
    assert complete.time_ms == 42000
    assert [(e.kind, e.row, e.col) for e in complete.click_log] == [(ClickKind.REVEAL, 2, 0)]

    # Completion is only announced once
    assert machine.reveal(2, 0) == []


def test_reveal_on_revealed_or_flagged_cell_is_noop():
    machine, _ = started_machine()
    assert machine.reveal(0, 2) == []

    machine.flag(2, 0)
    assert machine.reveal(2, 0) == []
    assert machine.board[2][0].state == CellState.FLAGGED


def test_mine_hit_starts_escalating_cooldown():
    machine, _ = started_machine()

    assert machine.reveal(0, 0) == [HitMineMessage(0, 0, 1)]
    assert machine.death_count == 1
    assert machine.cooldown_ms == 2000
    assert machine.board[0][0].state == CellState.UNREVEALED
    assert machine.in_cooldown
    assert not machine.can_act()

    # Locked out during cooldown
    assert machine.reveal(2, 0) == []
    assert machine.flag(2, 0) == []

    ticks = 0
    while machine.tick_cooldown():
        ticks += 1
    assert machine.cooldown_ms == 0
    assert ticks == 19
    assert not machine.in_cooldown

    assert machine.reveal(2, 2) == [HitMineMessage(2, 2, 2)]
    assert machine.cooldown_ms == 4000
    assert [e.kind for e in machine.click_log] == [ClickKind.REVEAL, ClickKind.REVEAL]


def test_cooldown_never_goes_negative():
    machine, _ = started_machine()
    machine.reveal(0, 0)
    machine.tick_cooldown(step_ms=5000)
    assert machine.cooldown_ms == 0
    assert not machine.tick_cooldown()


def test_flag_is_logged_and_reported():
    machine, _ = started_machine()
    assert machine.flag(0, 0) == [FlagMessage(0, 0)]
    assert machine.flags_remaining == 98
    assert machine.flag(0, 2) == []
    assert machine.click_log[-1].kind == ClickKind.FLAG


def test_chord_opens_neighbours():
    machine, _ = started_machine()
    machine.flag(0, 0)
    machine.flag(2, 2)
    outgoing = machine.chord(1, 1)
    assert outgoing[0] == ChordMessage(1, 1, (Coord(1, 0), Coord(2, 0), Coord(2, 1)))
    assert isinstance(outgoing[1], GameCompleteMessage)
    assert [e.kind for e in outgoing[1].click_log] == [ClickKind.FLAG, ClickKind.FLAG, ClickKind.CHORD]


def test_chord_not_applicable_sends_nothing():
    machine, _ = started_machine()
    assert machine.chord(1, 1) == []
    assert machine.click_log == []


def test_chord_onto_mine_is_a_hit_without_board_change():
    machine, _ = started_machine()
    machine.flag(0, 0)
    machine.flag(2, 1)
    before = machine.board
    assert machine.chord(1, 1) == [HitMineMessage(1, 1, 1)]
    assert machine.board is before
    assert machine.cooldown_ms == 2000


def test_opponent_projection():
    machine, _ = started_machine()
    machine.handle_message(OpponentProgressMessage((Coord(0, 1), Coord(0, 2)), 2))
    machine.handle_message(OpponentProgressMessage((Coord(1, 2),), 3))
    machine.handle_message(OpponentHitMineMessage(1))
    assert machine.opponent_revealed == {(0, 1), (0, 2), (1, 2)}
    assert machine.opponent_revealed_count == 3
    assert machine.opponent_death_count == 1


def test_game_over_finishes_and_is_terminal():
    machine, _ = started_machine()
    machine.handle_message(GameOverMessage('bob', 50000, 48000))
    assert machine.state == MatchState.FINISHED
    assert machine.result.winner == 'bob'
    assert not machine.won

    machine.handle_message(GameOverMessage('alice', 1, 1))
    machine.handle_message(OpponentDisconnectedMessage())
    machine.handle_message(MatchFoundMessage('carol', (0, 0)))
    assert machine.result.winner == 'bob'
    assert machine.state == MatchState.FINISHED
    assert machine.reveal(2, 0) == []


def test_opponent_link_drop_declares_win():
    machine, _ = started_machine()
    machine.elapsed_seconds = 30
    machine.handle_message(OpponentDisconnectedMessage())
    assert machine.state == MatchState.FINISHED
    assert machine.won
    assert machine.result.opponent_time_ms == 0
    assert machine.result.your_time_ms == 30000
    assert machine.result.disconnected


def test_elapsed_clock_saturates():
    machine, _ = started_machine()
    machine.elapsed_seconds = 998
    assert machine.tick_elapsed()
    assert machine.tick_elapsed()
    assert machine.elapsed_seconds == 999


def test_elapsed_clock_stops_when_not_playing():
    machine = MatchStateMachine('alice')
    assert not machine.tick_elapsed()
    assert machine.elapsed_seconds == 0


def test_click_log_timestamps_come_from_clock():
    machine, _ = started_machine()
    machine.flag(0, 0)
    machine.flag(0, 0)
    stamps = [e.ts for e in machine.click_log]
    assert stamps == sorted(stamps)
    assert stamps[0] >= 1000
