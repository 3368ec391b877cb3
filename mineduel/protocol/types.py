"""Shared protocol types: lifecycle enums, coordinates and the click log."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class MatchState(str, Enum):
    LOBBY = 'lobby'
    COUNTDOWN = 'countdown'
    PLAYING = 'playing'
    FINISHED = 'finished'


class ConnectionState(str, Enum):
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    RECONNECTING = 'reconnecting'
    DISCONNECTED = 'disconnected'


class ClickKind(str, Enum):
    REVEAL = 'reveal'
    CHORD = 'chord'
    FLAG = 'flag'


@dataclass(frozen=True)
class Coord:
    row: int
    col: int

    def to_dict(self) -> Dict[str, int]:
        return {'row': self.row, 'col': self.col}


@dataclass(frozen=True)
class ClickLogEntry:
    """One player input, kept in order for replay verification."""
    kind: ClickKind
    row: int
    col: int
    ts: int  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.kind.value, 'row': self.row, 'col': self.col, 'ts': self.ts}
