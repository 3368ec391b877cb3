import random

import pytest

from mineduel.client.simulated import SimulatedAuthority
from mineduel.engine.codec import decode_board
from mineduel.protocol import (
    ConnectionState, GameCompleteMessage, FlagMessage,
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage,
)


@pytest.fixture
def received():
    return []


@pytest.fixture
def sim(scheduler):
    return SimulatedAuthority(
        'alice', rows=8, cols=8, mine_count=10,
        rng=random.Random(3),
        timer_factory=scheduler,
        clock=scheduler.clock,
    )


def of_type(messages, cls):
    return [m for m in messages if isinstance(m, cls)]


def test_scripted_opening(sim, scheduler, received):
    sim.open(received.append)
    assert received == []
    assert sim.connection_state == ConnectionState.CONNECTING

    scheduler.advance(0.3)
    assert sim.connection_state == ConnectionState.CONNECTED
    found = received[0]
    assert isinstance(found, MatchFoundMessage)
    assert found.opponent == 'CPU_Player'
    assert found.match_id == 'offline'

    scheduler.advance(5)
    assert [m.seconds_remaining for m in of_type(received, CountdownMessage)] == [5, 4, 3, 2, 1]
    assert of_type(received, GameStartMessage) == []

    scheduler.advance(1)
    start = of_type(received, GameStartMessage)[0]
    board = decode_board(start.board)
    row, col = found.starting_square
    assert not board[row][col].is_mine
    assert len(board) == 8 and len(board[0]) == 8


def test_opponent_plays_to_completion(sim, scheduler, received):
    sim.MINE_HIT_CHANCE = 0.0
    sim.open(received.append)
    scheduler.advance(600)

    progress = of_type(received, OpponentProgressMessage)
    counts = [m.revealed_count for m in progress]
    assert counts == sorted(counts)
    assert all(1 <= len(m.cells) <= 3 for m in progress)

    assert sim.finished
    assert sim.opponent_revealed == sim.total_safe_cells == 54
    over = received[-1]
    assert isinstance(over, GameOverMessage)
    assert over.winner == 'CPU_Player'

    # No more moves once finished
    count = len(received)
    scheduler.advance(60)
    assert len(received) == count


def test_opponent_hits_mines(sim, scheduler, received):
    sim.MINE_HIT_CHANCE = 1.0
    sim.open(received.append)
    scheduler.advance(6.3 + 0.5 + 3.0 * 3)

    hits = of_type(received, OpponentHitMineMessage)
    assert len(hits) >= 3
    assert [m.death_count for m in hits] == list(range(1, len(hits) + 1))
    assert of_type(received, OpponentProgressMessage) == []


def test_player_completion_wins(sim, scheduler, received):
    sim.MINE_HIT_CHANCE = 0.0
    sim.open(received.append)
    scheduler.advance(6.3)
    scheduler.advance(0.6)

    sim.send(FlagMessage(0, 0))
    sim.send(GameCompleteMessage(700))
    over = received[-1]
    assert over.winner == 'alice'
    assert over.your_time_ms == 700
    assert 590 <= over.opponent_time_ms <= 610
    assert sim.finished

    count = len(received)
    scheduler.advance(60)
    sim.send(GameCompleteMessage(800))
    assert len(received) == count


def test_disconnect_stops_script(scheduler, received):
    states = []
    sim = SimulatedAuthority('alice', timer_factory=scheduler, on_state_change=states.append)
    sim.open(received.append)
    scheduler.advance(0.3)
    sim.disconnect()
    scheduler.advance(60)

    assert len(received) == 1
    assert sim.connection_state == ConnectionState.DISCONNECTED
    assert states == [ConnectionState.CONNECTED, ConnectionState.DISCONNECTED]
