"""
MatchClient: runs one MatchStateMachine against a SyncChannel.

Owns the elapsed clock and the cooldown ticker, forwards outgoing messages to
the channel, and serialises user input, timer ticks and inbound messages
behind a single lock.
"""

import logging
import threading
from typing import Callable, List

from ..core.timers import RepeatingTimer
from ..engine.board import CellState, in_bounds
from ..engine.codec import BoardCodecError
from ..protocol.channel import SyncChannel
from ..protocol.messages import ClientMessage, ServerMessage
from ..protocol.types import MatchState
from . import pointer
from .pointer import PointerTracker
from .state_machine import MatchStateMachine

logger = logging.getLogger(__name__)


class MatchClient:
    """
    Client-side match controller.

    Args:
        player_name: This player's id
        channel: Connection to the authority (real or simulated)
        match_id: Match to play, if already known
        timer_factory: threading.Timer compatible factory
        on_update: Called with the state machine after every change
    """

    ELAPSED_INTERVAL_SECONDS = 1.0
    COOLDOWN_INTERVAL_SECONDS = MatchStateMachine.COOLDOWN_TICK_MS / 1000

    def __init__(self, player_name: str, channel: SyncChannel, match_id: str = '',
                 timer_factory=threading.Timer,
                 clock: Callable[[], int] = None,
                 on_update: Callable[[MatchStateMachine], None] = None):
        self.machine = MatchStateMachine(player_name, match_id, clock=clock)
        self.channel = channel
        self.pointer = PointerTracker()
        self._on_update = on_update
        self._lock = threading.RLock()
        self._closed = False

        self._elapsed_timer = RepeatingTimer(
            self.ELAPSED_INTERVAL_SECONDS, self._on_elapsed_tick, timer_factory, name='elapsed'
        )
        self._cooldown_timer = RepeatingTimer(
            self.COOLDOWN_INTERVAL_SECONDS, self._on_cooldown_tick, timer_factory, name='cooldown'
        )

    @property
    def state(self) -> MatchState:
        return self.machine.state

    def start(self):
        """Open the channel. Authority messages start arriving after this."""
        self.channel.open(self._on_message)

    def close(self):
        """Stop every clock and leave the match."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._elapsed_timer.stop()
            self._cooldown_timer.stop()
        self.channel.disconnect()

    # =========================================================================
    # Input
    # =========================================================================

    def reveal(self, row: int, col: int) -> List[ClientMessage]:
        return self._apply(self.machine.reveal, row, col)

    def chord(self, row: int, col: int) -> List[ClientMessage]:
        return self._apply(self.machine.chord, row, col)

    def toggle_flag(self, row: int, col: int) -> List[ClientMessage]:
        return self._apply(self.machine.flag, row, col)

    def toggle_or_chord(self, row: int, col: int) -> List[ClientMessage]:
        """Space key: chord a revealed cell, otherwise toggle its flag."""
        board = self.machine.board
        if board is None or not in_bounds(board, row, col):
            return []
        if board[row][col].state == CellState.REVEALED:
            return self.chord(row, col)
        return self.toggle_flag(row, col)

    def press(self, button: str, row: int, col: int) -> List[ClientMessage]:
        """Mouse button down on a cell."""
        if self.pointer.press(button) == pointer.FLAG:
            return self.toggle_flag(row, col)
        return []

    def release(self, button: str, row: int, col: int) -> List[ClientMessage]:
        """Mouse button up on a cell."""
        action = self.pointer.release(button)
        if action == pointer.CHORD:
            return self.chord(row, col)
        if action == pointer.REVEAL:
            return self.reveal(row, col)
        return []

    def pointer_left(self):
        """The pointer left the board or a button went up outside it."""
        self.pointer.reset()

    def _apply(self, action, row: int, col: int) -> List[ClientMessage]:
        with self._lock:
            if self._closed or self.machine.board is None or not in_bounds(self.machine.board, row, col):
                return []
            deaths_before = self.machine.death_count
            outgoing = action(row, col)
            if self.machine.death_count != deaths_before:
                self._cooldown_timer.start()
            self._send_all(outgoing)
            self._sync_clocks()
        self._notify()
        return outgoing

    # =========================================================================
    # Authority messages
    # =========================================================================

    def _on_message(self, message: ServerMessage):
        with self._lock:
            if self._closed:
                return
            try:
                outgoing = self.machine.handle_message(message)
            except BoardCodecError as e:
                logger.error(f"Unusable board from authority: {e}")
                return
            self._send_all(outgoing)
            self._sync_clocks()
        self._notify()

    def _send_all(self, outgoing: List[ClientMessage]):
        for message in outgoing:
            self.channel.send(message)

    def _sync_clocks(self):
        if self.machine.state == MatchState.PLAYING:
            if not self._elapsed_timer.is_running:
                self._elapsed_timer.start()
        elif self.machine.state == MatchState.FINISHED:
            self._elapsed_timer.stop()
            self._cooldown_timer.stop()

    def _notify(self):
        if self._on_update:
            self._on_update(self.machine)

    # =========================================================================
    # Clocks
    # =========================================================================

    def _on_elapsed_tick(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            keep_going = self.machine.tick_elapsed()
        self._notify()
        return keep_going

    def _on_cooldown_tick(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            keep_going = self.machine.tick_cooldown()
        self._notify()
        return keep_going
