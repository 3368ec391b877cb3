import itertools

import pytest

from mineduel.client import pointer
from mineduel.client.match_client import MatchClient
from mineduel.client.pointer import PointerTracker
from mineduel.engine.board import CellState
from mineduel.engine.codec import encode_board
from mineduel.protocol import (
    ConnectionState, MatchState, SyncChannel,
    MatchFoundMessage, GameStartMessage, GameOverMessage,
)

from conftest import build_board

LAYOUT = (
    "*..",
    "...",
    "..*",
)


class FakeChannel(SyncChannel):
    def __init__(self):
        self.sent = []
        self.handler = None
        self.closed = False
        self.connection_state = ConnectionState.CONNECTED

    def open(self, on_message):
        self.handler = on_message

    def send(self, message):
        self.sent.append(message)

    def disconnect(self):
        self.closed = True
        self.connection_state = ConnectionState.DISCONNECTED

    def push(self, message):
        self.handler(message)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def updates():
    return []


@pytest.fixture
def client(channel, scheduler, updates):
    client = MatchClient('alice', channel, timer_factory=scheduler,
                         clock=itertools.count(1000).__next__, on_update=updates.append)
    client.start()
    return client


def start_playing(channel):
    channel.push(MatchFoundMessage('bob', (0, 2), 'm-1'))
    channel.push(GameStartMessage(encode_board(build_board(*LAYOUT))))


def test_opening_is_reported_and_clock_runs(client, channel, scheduler, updates):
    start_playing(channel)
    assert client.state == MatchState.PLAYING
    assert [m.TYPE for m in channel.sent] == ['reveal']
    assert len(updates) == 2

    scheduler.advance(3)
    assert client.machine.elapsed_seconds == 3


def test_input_before_deal_is_ignored(client, channel):
    channel.push(MatchFoundMessage('bob', (0, 2), 'm-1'))
    assert client.reveal(0, 0) == []
    assert channel.sent == []


def test_out_of_bounds_input_is_ignored(client, channel):
    start_playing(channel)
    channel.sent.clear()
    assert client.reveal(9, 9) == []
    assert client.toggle_flag(-1, 0) == []
    assert channel.sent == []


def test_mine_hit_runs_cooldown_clock(client, channel, scheduler):
    start_playing(channel)
    client.reveal(0, 0)
    assert channel.sent[-1].TYPE == 'hit_mine'
    assert client.machine.cooldown_ms == 2000
    assert client.reveal(2, 0) == []

    scheduler.advance(1.0)
    assert client.machine.cooldown_ms == 1000
    scheduler.advance(1.05)
    assert client.machine.cooldown_ms == 0

    outgoing = client.reveal(2, 0)
    assert [m.TYPE for m in outgoing] == ['reveal', 'game_complete']
    assert channel.sent[-2:] == outgoing


def test_game_over_stops_clocks(client, channel, scheduler):
    start_playing(channel)
    scheduler.advance(2)
    channel.push(GameOverMessage('bob', 2000, 1500))
    scheduler.advance(10)
    assert client.machine.elapsed_seconds == 2
    assert client.machine.result.winner == 'bob'
    assert scheduler.pending == []


def test_bad_board_leaves_match_waiting(client, channel):
    channel.push(MatchFoundMessage('bob', (0, 2), 'm-1'))
    channel.push(GameStartMessage('not a board'))
    assert client.state == MatchState.COUNTDOWN
    assert channel.sent == []


def test_close_leaves_and_stops(client, channel, scheduler):
    start_playing(channel)
    client.close()
    assert channel.closed
    assert scheduler.pending == []
    assert client.reveal(2, 0) == []

    # Late messages are ignored
    channel.push(GameOverMessage('bob', 1, 1))
    assert client.machine.result is None


def test_right_press_flags(client, channel):
    start_playing(channel)
    assert [m.TYPE for m in client.press(pointer.RIGHT, 0, 0)] == ['flag']
    assert client.release(pointer.RIGHT, 0, 0) == []
    assert client.machine.board[0][0].state == CellState.FLAGGED


def test_left_release_reveals(client, channel):
    start_playing(channel)
    assert client.press(pointer.LEFT, 2, 0) == []
    assert [m.TYPE for m in client.release(pointer.LEFT, 2, 0)] == ['reveal', 'game_complete']


def test_both_buttons_chord(client, channel):
    start_playing(channel)
    client.toggle_flag(0, 0)
    client.toggle_flag(2, 2)

    client.press(pointer.LEFT, 1, 1)
    assert client.press(pointer.RIGHT, 1, 1) == []
    assert [m.TYPE for m in client.release(pointer.LEFT, 1, 1)] == ['chord', 'game_complete']
    assert client.release(pointer.RIGHT, 1, 1) == []


def test_space_key_chords_or_flags(client, channel):
    start_playing(channel)
    assert [m.TYPE for m in client.toggle_or_chord(0, 0)] == ['flag']
    assert client.toggle_or_chord(1, 1) == []
    client.toggle_flag(2, 2)
    assert client.toggle_or_chord(1, 1)[0].TYPE == 'chord'


# =============================================================================
# POINTER TRACKER
# =============================================================================

def test_pointer_plain_clicks():
    tracker = PointerTracker()
    assert tracker.press(pointer.LEFT) is None
    assert tracker.release(pointer.LEFT) == pointer.REVEAL
    assert tracker.press(pointer.RIGHT) == pointer.FLAG
    assert tracker.release(pointer.RIGHT) is None


def test_pointer_chord_fires_once():
    tracker = PointerTracker()
    tracker.press(pointer.RIGHT)
    assert tracker.press(pointer.LEFT) is None
    assert tracker.release(pointer.RIGHT) == pointer.CHORD
    # Releasing the other button after a chord does not reveal
    assert tracker.release(pointer.LEFT) is None

    # A fresh click afterwards behaves normally
    tracker.press(pointer.LEFT)
    assert tracker.release(pointer.LEFT) == pointer.REVEAL


def test_pointer_right_press_during_left_hold_does_not_flag():
    tracker = PointerTracker()
    tracker.press(pointer.LEFT)
    assert tracker.press(pointer.RIGHT) is None
    assert tracker.release(pointer.LEFT) == pointer.CHORD


def test_pointer_reset():
    tracker = PointerTracker()
    tracker.press(pointer.LEFT)
    tracker.press(pointer.RIGHT)
    tracker.reset()
    assert tracker.release(pointer.LEFT) is None
    assert tracker.press(pointer.LEFT) is None
    assert tracker.release(pointer.LEFT) == pointer.REVEAL


def test_leaving_board_mid_chord_drops_it(client, channel):
    start_playing(channel)
    client.press(pointer.LEFT, 1, 1)
    client.press(pointer.RIGHT, 1, 1)
    client.pointer_left()
    assert client.release(pointer.LEFT, 1, 1) == []

    # The next plain click works again
    client.press(pointer.LEFT, 2, 0)
    assert client.release(pointer.LEFT, 2, 0)[0].TYPE == 'reveal'
