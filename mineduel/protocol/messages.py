"""
Synchronization protocol messages.

Every message is a JSON object tagged by ``type``. Each tag maps to one
dataclass, so a parsed message is always one of a closed set of shapes:

    Client -> authority: reveal, chord, flag, hit_mine, game_complete, leave
    Authority -> client: match_found, countdown, game_start, opponent_progress,
                         opponent_hit_mine, game_over, opponent_disconnected

``parse_client_message`` / ``parse_server_message`` turn a decoded JSON object
into the matching dataclass and raise ``ProtocolError`` for anything else.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, Tuple, Type, Union

from .types import ClickKind, ClickLogEntry, Coord


class ProtocolError(ValueError):
    """A message that does not match any known shape."""


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _int(data: Dict[str, Any], key: str, minimum: int = None) -> int:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ProtocolError(f"Field '{key}' must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise ProtocolError(f"Field '{key}' must be >= {minimum}, got {value}")
    return value


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string, got {value!r}")
    return value


def _coords(data: Dict[str, Any], key: str) -> Tuple[Coord, ...]:
    raw = data.get(key)
    if not isinstance(raw, list):
        raise ProtocolError(f"Field '{key}' must be a list of cells")
    coords = []
    for item in raw:
        if not isinstance(item, dict):
            raise ProtocolError(f"Cell entry in '{key}' must be an object, got {item!r}")
        coords.append(Coord(_int(item, 'row', 0), _int(item, 'col', 0)))
    return tuple(coords)


def _click_log(data: Dict[str, Any], key: str) -> Tuple[ClickLogEntry, ...]:
    raw = data.get(key)
    if not isinstance(raw, list):
        raise ProtocolError(f"Field '{key}' must be a list")
    entries = []
    for item in raw:
        if not isinstance(item, dict):
            raise ProtocolError(f"Click log entry must be an object, got {item!r}")
        try:
            kind = ClickKind(item.get('type'))
        except ValueError:
            raise ProtocolError(f"Unknown click log kind: {item.get('type')!r}")
        entries.append(ClickLogEntry(kind, _int(item, 'row', 0), _int(item, 'col', 0), _int(item, 'ts', 0)))
    return tuple(entries)


def coords(cells: Iterable[Tuple[int, int]]) -> Tuple[Coord, ...]:
    """Build a coordinate tuple from (row, col) pairs."""
    return tuple(Coord(r, c) for r, c in cells)


# =============================================================================
# CLIENT -> AUTHORITY
# =============================================================================

@dataclass(frozen=True)
class RevealMessage:
    TYPE: ClassVar[str] = 'reveal'
    row: int
    col: int
    result_cells: Tuple[Coord, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'row': self.row,
            'col': self.col,
            'resultCells': [c.to_dict() for c in self.result_cells],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'row', 0), _int(data, 'col', 0), _coords(data, 'resultCells'))


@dataclass(frozen=True)
class ChordMessage:
    TYPE: ClassVar[str] = 'chord'
    row: int
    col: int
    result_cells: Tuple[Coord, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'row': self.row,
            'col': self.col,
            'resultCells': [c.to_dict() for c in self.result_cells],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'row', 0), _int(data, 'col', 0), _coords(data, 'resultCells'))


@dataclass(frozen=True)
class FlagMessage:
    TYPE: ClassVar[str] = 'flag'
    row: int
    col: int

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE, 'row': self.row, 'col': self.col}

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'row', 0), _int(data, 'col', 0))


@dataclass(frozen=True)
class HitMineMessage:
    TYPE: ClassVar[str] = 'hit_mine'
    row: int
    col: int
    death_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE, 'row': self.row, 'col': self.col, 'deathCount': self.death_count}

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'row', 0), _int(data, 'col', 0), _int(data, 'deathCount', 1))


@dataclass(frozen=True)
class GameCompleteMessage:
    TYPE: ClassVar[str] = 'game_complete'
    time_ms: int
    click_log: Tuple[ClickLogEntry, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'timeMs': self.time_ms,
            'clickLog': [entry.to_dict() for entry in self.click_log],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'timeMs', 0), _click_log(data, 'clickLog'))


@dataclass(frozen=True)
class LeaveMessage:
    TYPE: ClassVar[str] = 'leave'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE}

    @classmethod
    def from_dict(cls, data):
        return cls()


# =============================================================================
# AUTHORITY -> CLIENT
# =============================================================================

@dataclass(frozen=True)
class MatchFoundMessage:
    TYPE: ClassVar[str] = 'match_found'
    opponent: str
    starting_square: Tuple[int, int]
    match_id: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'matchId': self.match_id,
            'opponent': self.opponent,
            'startingSquare': list(self.starting_square),
        }

    @classmethod
    def from_dict(cls, data):
        square = data.get('startingSquare')
        if (not isinstance(square, (list, tuple)) or len(square) != 2
                or not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in square)):
            raise ProtocolError(f"Field 'startingSquare' must be [row, col], got {square!r}")
        match_id = data.get('matchId', '')
        if not isinstance(match_id, str):
            raise ProtocolError("Field 'matchId' must be a string")
        return cls(_str(data, 'opponent'), (square[0], square[1]), match_id)


@dataclass(frozen=True)
class CountdownMessage:
    TYPE: ClassVar[str] = 'countdown'
    seconds_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE, 'secondsRemaining': self.seconds_remaining}

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'secondsRemaining', 0))


@dataclass(frozen=True)
class GameStartMessage:
    TYPE: ClassVar[str] = 'game_start'
    board: str

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE, 'board': self.board}

    @classmethod
    def from_dict(cls, data):
        return cls(_str(data, 'board'))


@dataclass(frozen=True)
class OpponentProgressMessage:
    TYPE: ClassVar[str] = 'opponent_progress'
    cells: Tuple[Coord, ...]
    revealed_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'cells': [c.to_dict() for c in self.cells],
            'revealedCount': self.revealed_count,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(_coords(data, 'cells'), _int(data, 'revealedCount', 0))


@dataclass(frozen=True)
class OpponentHitMineMessage:
    TYPE: ClassVar[str] = 'opponent_hit_mine'
    death_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE, 'deathCount': self.death_count}

    @classmethod
    def from_dict(cls, data):
        return cls(_int(data, 'deathCount', 0))


@dataclass(frozen=True)
class GameOverMessage:
    TYPE: ClassVar[str] = 'game_over'
    winner: str
    your_time_ms: int
    opponent_time_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.TYPE,
            'winner': self.winner,
            'yourTimeMs': self.your_time_ms,
            'opponentTimeMs': self.opponent_time_ms,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(_str(data, 'winner'), _int(data, 'yourTimeMs', 0), _int(data, 'opponentTimeMs', 0))


@dataclass(frozen=True)
class OpponentDisconnectedMessage:
    TYPE: ClassVar[str] = 'opponent_disconnected'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.TYPE}

    @classmethod
    def from_dict(cls, data):
        return cls()


ClientMessage = Union[
    RevealMessage, ChordMessage, FlagMessage, HitMineMessage, GameCompleteMessage, LeaveMessage,
]
ServerMessage = Union[
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage, OpponentDisconnectedMessage,
]

CLIENT_MESSAGES: Dict[str, Type] = {
    cls.TYPE: cls
    for cls in (RevealMessage, ChordMessage, FlagMessage, HitMineMessage, GameCompleteMessage, LeaveMessage)
}
SERVER_MESSAGES: Dict[str, Type] = {
    cls.TYPE: cls
    for cls in (MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
                OpponentHitMineMessage, GameOverMessage, OpponentDisconnectedMessage)
}


def _parse(data: Any, registry: Dict[str, Type], direction: str):
    if not isinstance(data, dict):
        raise ProtocolError(f"{direction} message must be a JSON object, got {type(data).__name__}")
    message_type = data.get('type')
    if not isinstance(message_type, str):
        raise ProtocolError(f"{direction} message type must be a string, got {message_type!r}")
    message_class = registry.get(message_type)
    if message_class is None:
        raise ProtocolError(f"Unknown {direction} message type: {message_type!r}")
    return message_class.from_dict(data)


def parse_client_message(data: Any) -> ClientMessage:
    """Parse a client -> authority message."""
    return _parse(data, CLIENT_MESSAGES, 'client')


def parse_server_message(data: Any) -> ServerMessage:
    """Parse an authority -> client message."""
    return _parse(data, SERVER_MESSAGES, 'server')
