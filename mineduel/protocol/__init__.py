"""Synchronization protocol between clients and the match authority."""

from .types import MatchState, ConnectionState, ClickKind, Coord, ClickLogEntry
from .messages import (
    ProtocolError, ClientMessage, ServerMessage,
    RevealMessage, ChordMessage, FlagMessage, HitMineMessage, GameCompleteMessage, LeaveMessage,
    MatchFoundMessage, CountdownMessage, GameStartMessage, OpponentProgressMessage,
    OpponentHitMineMessage, GameOverMessage, OpponentDisconnectedMessage,
    coords, parse_client_message, parse_server_message,
)
from .channel import SyncChannel, MessageHandler

__all__ = [
    'MatchState', 'ConnectionState', 'ClickKind', 'Coord', 'ClickLogEntry',
    'ProtocolError', 'ClientMessage', 'ServerMessage',
    'RevealMessage', 'ChordMessage', 'FlagMessage', 'HitMineMessage', 'GameCompleteMessage',
    'LeaveMessage', 'MatchFoundMessage', 'CountdownMessage', 'GameStartMessage',
    'OpponentProgressMessage', 'OpponentHitMineMessage', 'GameOverMessage',
    'OpponentDisconnectedMessage', 'coords', 'parse_client_message', 'parse_server_message',
    'SyncChannel', 'MessageHandler',
]
