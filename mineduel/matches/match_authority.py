"""
MatchAuthority: the server side of one match.

Holds the true board of both players, runs the countdown, deals the boards,
checks every report against its own recomputation, relays progress to the
opponent and decides the winner. One instance per match id; nothing is
shared between matches.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..core.timers import RepeatingTimer, TimerGroup
from ..engine.board import (
    ROWS, COLS, MINE_COUNT, Board,
    in_bounds, generate_board, reveal_cell, toggle_flag, chord_reveal,
    count_revealed, diff_revealed_cells,
)
from ..engine.codec import encode_board
from ..protocol.messages import (
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage, OpponentDisconnectedMessage, coords,
)
from ..protocol.types import MatchState
from .base_match import BaseMatch, EventContext, EventResponse
from .replay import same_cells, verify_completion

logger = logging.getLogger(__name__)

Emitter = Callable[[str, EventResponse], None]


@dataclass
class PlayerSlot:
    player_id: str
    board: Optional[Board] = None
    initial_board: Optional[Board] = None
    death_count: int = 0
    connected: bool = False
    left: bool = False
    pending_start: bool = False  # dealt while disconnected
    desync_count: int = 0
    final_message: Optional[Any] = None  # result, re-sent on reconnect


class MatchAuthority(BaseMatch):
    """
    Authority-side match state machine.

    lobby -> countdown once both players are connected, countdown -> playing
    when the boards are dealt, playing -> finished on a verified completion,
    a forfeit, or an expired reconnect grace period.
    A finished match keeps its reconnect grace timers running so a player
    who was away still receives the result on return.

    All public methods expect ``lock`` to be held by the caller; timer
    callbacks take it themselves and deliver their responses through the
    emitter while still holding it, so each player sees messages in order.
    """

    COUNTDOWN_SECONDS = 5
    RECONNECT_GRACE_SECONDS = 10.0

    EVENTS = {
        'reveal': 'handle_reveal',
        'chord': 'handle_chord',
        'flag': 'handle_flag',
        'hit_mine': 'handle_hit_mine',
        'game_complete': 'handle_game_complete',
        'leave': 'handle_leave',
    }

    def __init__(self, match_id: str, player_ids: Sequence[str], emit: Emitter,
                 rows: int = ROWS, cols: int = COLS, mine_count: int = MINE_COUNT,
                 rng: Optional[random.Random] = None,
                 countdown_seconds: int = None,
                 grace_seconds: float = None,
                 timer_factory=threading.Timer,
                 clock: Callable[[], float] = time.monotonic,
                 on_idle: Callable[[str], None] = None):
        if len(player_ids) != 2 or player_ids[0] == player_ids[1]:
            raise ValueError(f"A match needs two distinct players, got {list(player_ids)}")

        self.match_id = match_id
        self.player_ids: Tuple[str, str] = (player_ids[0], player_ids[1])
        self.players: Dict[str, PlayerSlot] = {pid: PlayerSlot(pid) for pid in self.player_ids}

        self.rows = rows
        self.cols = cols
        self.mine_count = mine_count
        self.countdown_seconds = self.COUNTDOWN_SECONDS if countdown_seconds is None else countdown_seconds
        self.grace_seconds = self.RECONNECT_GRACE_SECONDS if grace_seconds is None else grace_seconds

        self.state = MatchState.LOBBY
        self.starting_square: Optional[Tuple[int, int]] = None
        self.winner: Optional[str] = None

        self.lock = threading.RLock()
        self._emit = emit
        self._on_idle = on_idle
        self._rng = rng or random.Random()
        self._clock = clock
        self._started_at: Optional[float] = None
        self._countdown_remaining = 0
        self._countdown = RepeatingTimer(1.0, self._on_countdown_tick, timer_factory,
                                         name=f'countdown:{match_id}')
        self._timers = TimerGroup(timer_factory)
        self._grace_timers: Dict[str, Optional[int]] = {}
        self.closed = False

    def opponent_of(self, player_id: str) -> str:
        first, second = self.player_ids
        return second if player_id == first else first

    def elapsed_ms(self) -> int:
        """Milliseconds since the boards were dealt, 0 before that."""
        if self._started_at is None:
            return 0
        return int((self._clock() - self._started_at) * 1000)

    @property
    def result_pending(self) -> bool:
        """Finished, but a dropped player may still come back for the result."""
        return self.state == MatchState.FINISHED and bool(self._grace_timers)

    def get_sanitized_state_data(self) -> Dict[str, Any]:
        with self.lock:
            return {
                'match_id': self.match_id,
                'state': self.state.value,
                'winner': self.winner,
                'players': [
                    {
                        'player_id': slot.player_id,
                        'connected': slot.connected,
                        'death_count': slot.death_count,
                        'revealed_count': count_revealed(slot.board) if slot.board else 0,
                    }
                    for slot in self.players.values()
                ],
            }

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def player_connected(self, player_id: str) -> EventResponse:
        response = EventResponse()
        slot = self.players.get(player_id)
        if not slot or self.closed:
            return response

        slot.connected = True
        slot.left = False
        self._timers.cancel(self._grace_timers.pop(player_id, None))
        logger.info(f"Match {self.match_id}: {player_id} connected ({self.state.value})")

        if self.state == MatchState.LOBBY:
            if all(s.connected for s in self.players.values()):
                response.merge(self._begin_countdown())
        elif self.state == MatchState.PLAYING and slot.pending_start:
            slot.pending_start = False
            response.send(player_id, GameStartMessage(encode_board(slot.initial_board)))
        elif self.state == MatchState.FINISHED and slot.final_message is not None:
            response.send(player_id, slot.final_message)

        return response

    def player_disconnected(self, player_id: str) -> EventResponse:
        response = EventResponse()
        slot = self.players.get(player_id)
        if not slot:
            return response

        slot.connected = False
        if slot.left or self.closed or self.state not in (MatchState.COUNTDOWN, MatchState.PLAYING):
            return response

        logger.info(f"Match {self.match_id}: {player_id} dropped, "
                    f"waiting {self.grace_seconds}s for reconnect")
        self._timers.cancel(self._grace_timers.pop(player_id, None))
        self._grace_timers[player_id] = self._timers.call_later(
            self.grace_seconds, self._on_grace_expired, player_id
        )
        return response

    def _on_grace_expired(self, player_id: str):
        with self.lock:
            self._grace_timers.pop(player_id, None)
            slot = self.players[player_id]
            if self.closed or slot.connected:
                return

            if self.state in (MatchState.COUNTDOWN, MatchState.PLAYING):
                remaining = self.opponent_of(player_id)
                logger.info(f"Match {self.match_id}: {player_id} did not return, {remaining} wins")
                self._finish(remaining, {
                    remaining: OpponentDisconnectedMessage(),
                    player_id: GameOverMessage(remaining, 0, self.elapsed_ms()),
                })
                self._emit(self.match_id, EventResponse().send(remaining, OpponentDisconnectedMessage()))

            idle = self.state == MatchState.FINISHED and not self._grace_timers

        if idle and self._on_idle:
            self._on_idle(self.match_id)

    def close(self) -> None:
        with self.lock:
            self.closed = True
            self._countdown.stop()
            self._timers.close()
            self._grace_timers.clear()

    # =========================================================================
    # Countdown and deal
    # =========================================================================

    def _begin_countdown(self) -> EventResponse:
        self.starting_square = (self._rng.randrange(self.rows), self._rng.randrange(self.cols))
        self.state = MatchState.COUNTDOWN
        self._countdown_remaining = self.countdown_seconds

        response = EventResponse()
        for player_id in self.player_ids:
            response.send(player_id, MatchFoundMessage(
                opponent=self.opponent_of(player_id),
                starting_square=self.starting_square,
                match_id=self.match_id,
            ))
        logger.info(f"Match {self.match_id}: countdown from {self.countdown_seconds}, "
                    f"starting square {self.starting_square}")

        if self.countdown_seconds <= 0:
            response.merge(self._deal())
        else:
            self._countdown.start()
        return response

    def _on_countdown_tick(self) -> bool:
        with self.lock:
            if self.closed or self.state != MatchState.COUNTDOWN:
                return False

            response = EventResponse()
            keep_ticking = self._countdown_remaining > 0
            if keep_ticking:
                for player_id in self.player_ids:
                    response.send(player_id, CountdownMessage(self._countdown_remaining))
                self._countdown_remaining -= 1
            else:
                response.merge(self._deal())

            self._emit(self.match_id, response)
            return keep_ticking

    def _deal(self) -> EventResponse:
        row, col = self.starting_square
        response = EventResponse()
        for player_id in self.player_ids:
            slot = self.players[player_id]
            slot.initial_board = generate_board(row, col, self.rows, self.cols,
                                                self.mine_count, rng=self._rng)
            slot.board = slot.initial_board
            if slot.connected:
                response.send(player_id, GameStartMessage(encode_board(slot.initial_board)))
            else:
                slot.pending_start = True

        self.state = MatchState.PLAYING
        self._started_at = self._clock()
        logger.info(f"Match {self.match_id}: boards dealt, playing")
        return response

    def _finish(self, winner: Optional[str], finals: Dict[str, Any]):
        self.state = MatchState.FINISHED
        self.winner = winner
        self._countdown.stop()
        for player_id, message in finals.items():
            self.players[player_id].final_message = message

    # =========================================================================
    # Player reports
    # =========================================================================

    def _playing_slot(self, context: EventContext) -> Optional[PlayerSlot]:
        if self.state != MatchState.PLAYING:
            logger.debug(f"Match {self.match_id}: report from {context.player_id} "
                         f"ignored in state {self.state.value}")
            return None
        return self.players.get(context.player_id)

    def _reject(self, slot: PlayerSlot, reason: str) -> None:
        slot.desync_count += 1
        logger.warning(f"Match {self.match_id}: desync from {slot.player_id} "
                       f"(#{slot.desync_count}): {reason}")
        return None

    def _progress(self, slot: PlayerSlot, opened: List[Tuple[int, int]]) -> Optional[EventResponse]:
        if not opened:
            return None
        return EventResponse().send(
            self.opponent_of(slot.player_id),
            OpponentProgressMessage(coords(opened), count_revealed(slot.board)),
        )

    def handle_reveal(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self._playing_slot(context)
        if not slot:
            return None
        row, col = message.row, message.col
        if not in_bounds(slot.board, row, col):
            return self._reject(slot, f"reveal ({row}, {col}) is off the board")
        if slot.board[row][col].is_mine:
            return self._reject(slot, f"reveal ({row}, {col}) targets a mine")

        before = slot.board
        after = reveal_cell(before, row, col)
        opened = diff_revealed_cells(before, after)
        if not same_cells(message.result_cells, opened):
            return self._reject(slot, f"reveal ({row}, {col}) reported {len(message.result_cells)} "
                                      f"cells, expected {len(opened)}")

        slot.board = after
        return self._progress(slot, opened)

    def handle_chord(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self._playing_slot(context)
        if not slot:
            return None
        row, col = message.row, message.col
        if not in_bounds(slot.board, row, col):
            return self._reject(slot, f"chord ({row}, {col}) is off the board")

        result = chord_reveal(slot.board, row, col)
        if result is None:
            return self._reject(slot, f"chord ({row}, {col}) is not applicable")
        if result.hit:
            return self._reject(slot, f"chord ({row}, {col}) opens a mine")

        opened = diff_revealed_cells(slot.board, result.board)
        if not same_cells(message.result_cells, opened):
            return self._reject(slot, f"chord ({row}, {col}) reported {len(message.result_cells)} "
                                      f"cells, expected {len(opened)}")

        slot.board = result.board
        return self._progress(slot, opened)

    def handle_flag(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self._playing_slot(context)
        if not slot:
            return None
        if not in_bounds(slot.board, message.row, message.col):
            return self._reject(slot, f"flag ({message.row}, {message.col}) is off the board")
        slot.board = toggle_flag(slot.board, message.row, message.col)
        return None

    def handle_hit_mine(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self._playing_slot(context)
        if not slot:
            return None
        if not in_bounds(slot.board, message.row, message.col):
            return self._reject(slot, f"hit_mine ({message.row}, {message.col}) is off the board")

        slot.death_count += 1
        if message.death_count != slot.death_count:
            self._reject(slot, f"death count {message.death_count} reported, "
                               f"authority has {slot.death_count}")

        return EventResponse().send(
            self.opponent_of(slot.player_id),
            OpponentHitMineMessage(slot.death_count),
        )

    def handle_game_complete(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self._playing_slot(context)
        if not slot:
            return None

        if not verify_completion(slot.initial_board, self.starting_square, message.click_log):
            return self._reject(slot, f"completion claim with {len(message.click_log)} clicks "
                                      f"does not replay to a cleared board")

        winner = slot.player_id
        loser = self.opponent_of(winner)
        loser_time_ms = self.elapsed_ms()
        finals = {
            winner: GameOverMessage(winner, message.time_ms, loser_time_ms),
            loser: GameOverMessage(winner, loser_time_ms, message.time_ms),
        }
        self._finish(winner, finals)
        logger.info(f"Match {self.match_id}: {winner} wins in {message.time_ms}ms")

        response = EventResponse()
        for player_id, result in finals.items():
            response.send(player_id, result)
        return response

    def handle_leave(self, message, context: EventContext) -> Optional[EventResponse]:
        slot = self.players.get(context.player_id)
        if not slot:
            return None
        slot.left = True

        if self.state not in (MatchState.COUNTDOWN, MatchState.PLAYING):
            return None

        remaining = self.opponent_of(slot.player_id)
        logger.info(f"Match {self.match_id}: {slot.player_id} left, {remaining} wins by forfeit")
        elapsed = self.elapsed_ms()
        result = GameOverMessage(remaining, elapsed, 0)
        self._finish(remaining, {
            remaining: result,
            slot.player_id: GameOverMessage(remaining, 0, elapsed),
        })
        return EventResponse().send(remaining, result)
