"""
SimulatedAuthority: an offline opponent behind the SyncChannel interface.

Plays the authority's side of a match locally: connects after a short delay,
announces a CPU opponent, counts down, deals a board and then reveals the
opponent's safe cells in small random batches, occasionally hitting a mine.
"""

import logging
import random
import threading
import time
from typing import Callable, List, Optional, Tuple

from ..core.timers import TimerGroup
from ..engine.board import (
    ROWS, COLS, MINE_COUNT, CellState, generate_board, reveal_cell,
)
from ..engine.codec import encode_board
from ..protocol.channel import MessageHandler, SyncChannel
from ..protocol.messages import (
    ClientMessage, ServerMessage, GameCompleteMessage,
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage, coords,
)
from ..protocol.types import ConnectionState

logger = logging.getLogger(__name__)


class SimulatedAuthority(SyncChannel):
    """Local stand-in for the authority, for offline play and demos."""

    OPPONENT_NAME = 'CPU_Player'
    CONNECT_DELAY_SECONDS = 0.3
    COUNTDOWN_SECONDS = 5
    FIRST_MOVE_DELAY_SECONDS = 0.5
    MINE_HIT_CHANCE = 0.1
    MAX_BATCH = 3

    def __init__(self, player_name: str, match_id: str = 'offline',
                 rows: int = ROWS, cols: int = COLS, mine_count: int = MINE_COUNT,
                 rng: Optional[random.Random] = None,
                 timer_factory=threading.Timer,
                 clock: Callable[[], float] = time.monotonic,
                 on_state_change: Callable[[ConnectionState], None] = None):
        self.player_name = player_name
        self.match_id = match_id
        self.rows = rows
        self.cols = cols
        self.mine_count = mine_count
        self._rng = rng or random.Random()
        self._clock = clock
        self._timers = TimerGroup(timer_factory)
        self._on_state_change = on_state_change
        self._on_message: Optional[MessageHandler] = None
        self._lock = threading.Lock()
        self._closed = False

        self.connection_state = ConnectionState.CONNECTING
        self.starting_square: Optional[Tuple[int, int]] = None
        self.opponent_remaining: List[Tuple[int, int]] = []
        self.opponent_revealed = 0
        self.opponent_deaths = 0
        self._started_at: Optional[float] = None
        self.finished = False

    @property
    def total_safe_cells(self) -> int:
        return self.rows * self.cols - self.mine_count

    def _elapsed_ms(self) -> int:
        if self._started_at is None:
            return 0
        return int((self._clock() - self._started_at) * 1000)

    def _deliver(self, message: ServerMessage):
        if self._closed or not self._on_message:
            return
        self._on_message(message)

    def _set_state(self, state: ConnectionState):
        self.connection_state = state
        if self._on_state_change:
            self._on_state_change(state)

    # =========================================================================
    # SyncChannel
    # =========================================================================

    def open(self, on_message: MessageHandler) -> None:
        self._on_message = on_message
        self._timers.call_later(self.CONNECT_DELAY_SECONDS, self._on_connected)

    def send(self, message: ClientMessage) -> None:
        reply = None
        with self._lock:
            if self._closed or self.finished:
                return
            if isinstance(message, GameCompleteMessage):
                self.finished = True
                self._timers.cancel_all()
                reply = GameOverMessage(
                    winner=self.player_name,
                    your_time_ms=message.time_ms,
                    opponent_time_ms=self._elapsed_ms(),
                )
            else:
                logger.debug(f"Simulated authority ignoring {message.TYPE}")
        if reply:
            self._deliver(reply)

    def disconnect(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._timers.close()
        self._set_state(ConnectionState.DISCONNECTED)

    # =========================================================================
    # Scripted match
    # =========================================================================

    def _on_connected(self):
        self._set_state(ConnectionState.CONNECTED)

        self.starting_square = (self._rng.randrange(self.rows), self._rng.randrange(self.cols))
        self._deliver(MatchFoundMessage(
            opponent=self.OPPONENT_NAME,
            starting_square=self.starting_square,
            match_id=self.match_id,
        ))

        for seconds in range(self.COUNTDOWN_SECONDS, 0, -1):
            self._timers.call_later(self.COUNTDOWN_SECONDS - seconds + 1,
                                    self._deliver, CountdownMessage(seconds))
        self._timers.call_later(self.COUNTDOWN_SECONDS + 1, self._deal)

    def _deal(self):
        row, col = self.starting_square
        with self._lock:
            board = generate_board(row, col, self.rows, self.cols, self.mine_count, rng=self._rng)
            opened = reveal_cell(board, row, col)

            remaining = []
            already = 0
            for r, cells in enumerate(opened):
                for c, cell in enumerate(cells):
                    if cell.is_mine:
                        continue
                    if cell.state == CellState.REVEALED:
                        already += 1
                    else:
                        remaining.append((r, c))
            self._rng.shuffle(remaining)

            self.opponent_remaining = remaining
            self.opponent_revealed = already
            self.opponent_deaths = 0
            self._started_at = self._clock()

        self._deliver(GameStartMessage(encode_board(board)))
        self._timers.call_later(self.FIRST_MOVE_DELAY_SECONDS, self._opponent_tick)

    def _opponent_tick(self):
        with self._lock:
            if self._closed or self.finished:
                return

            if self.opponent_remaining and self._rng.random() < self.MINE_HIT_CHANCE:
                self.opponent_deaths += 1
                messages = [OpponentHitMineMessage(self.opponent_deaths)]
                next_delay = 2.0 + self._rng.random()
            else:
                batch = min(1 + self._rng.randrange(self.MAX_BATCH), len(self.opponent_remaining))
                cells = self.opponent_remaining[:batch]
                del self.opponent_remaining[:batch]
                self.opponent_revealed += batch
                messages = [OpponentProgressMessage(coords(cells), self.opponent_revealed)] if cells else []
                next_delay = 0.2 + self._rng.random() * 0.3

                if self.opponent_revealed >= self.total_safe_cells:
                    self.finished = True
                    elapsed = self._elapsed_ms()
                    messages.append(GameOverMessage(self.OPPONENT_NAME, elapsed, elapsed))
                    next_delay = None

        for message in messages:
            self._deliver(message)
        if next_delay is not None:
            self._timers.call_later(next_delay, self._opponent_tick)
