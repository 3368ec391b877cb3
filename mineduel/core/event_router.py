"""
EventRouter: Routes Socket.IO traffic to the match each session belongs to.
"""

import logging
from typing import Any, Dict, Optional
from flask_socketio import join_room

from ..matches.base_match import EventResponse, EventContext
from ..protocol.messages import ProtocolError, parse_client_message
from ..protocol.types import MatchState

logger = logging.getLogger(__name__)


def player_room(match_id: str, player_id: str) -> str:
    """Socket.IO room holding every session of one player in one match."""
    return f"match:{match_id}:player:{player_id}"


class EventRouter:
    def __init__(self, socketio, session_manager, match_registry):
        self.socketio = socketio
        self.session_manager = session_manager
        self.match_registry = match_registry
        self.match_registry.set_emitter(self._process_response, self.release_if_idle)

    def handle_connect(self, sid: str, auth: Optional[Dict[str, Any]]) -> bool:
        """
        Admit a socket into its match.

        Returns:
            False to refuse the connection
        """
        if not isinstance(auth, dict):
            logger.warning(f"Connection {sid} refused: no auth payload")
            return False

        match_id = auth.get('matchId')
        player_id = self.session_manager.redeem_ticket(auth.get('ticket'))
        if not player_id:
            logger.warning(f"Connection {sid} refused: invalid or used ticket")
            return False

        match = self.match_registry.get_match(match_id) if isinstance(match_id, str) else None
        if not match or player_id not in match.players:
            logger.warning(f"Connection {sid} refused: {player_id} is not in match {match_id}")
            return False

        self.session_manager.bind_session(sid, player_id, match_id)
        join_room(player_room(match_id, player_id), sid=sid)

        with match.lock:
            response = match.player_connected(player_id)
            self._process_response(match_id, response)
        return True

    def handle_disconnect(self, sid: str):
        session_data = self.session_manager.unbind_session(sid)
        if not session_data:
            return

        match_id = session_data['match_id']
        player_id = session_data['player_id']
        match = self.match_registry.get_match(match_id)
        if not match:
            return

        # A newer session for the same player is already live
        if self.session_manager.sessions_for_player(match_id, player_id):
            return

        with match.lock:
            response = match.player_disconnected(player_id)
            self._process_response(match_id, response)

        self.release_if_idle(match_id)

    def release_if_idle(self, match_id: str):
        """Remove a finished match once nobody is connected or still owed the result."""
        match = self.match_registry.get_match(match_id)
        if not match:
            return

        with match.lock:
            idle = match.state == MatchState.FINISHED and not match.result_pending
        if idle and not any(
            self.session_manager.sessions_for_player(match_id, pid) for pid in match.player_ids
        ):
            self.match_registry.remove_match(match_id)

    def handle_event(self, data: Any, sid: str):
        """
        Route a protocol message to the sender's match.
        """
        # 1. Build Context
        session_data = self.session_manager.get_session(sid)
        if not session_data:
            self.socketio.emit('error', {'code': 'NOT_IN_MATCH', 'message': 'Session is not bound to a match'}, room=sid)
            return
        self.session_manager.touch_session(sid)

        context = EventContext(
            session_id=sid,
            player_id=session_data['player_id'],
            match_id=session_data['match_id'],
        )

        # 2. Parse
        try:
            message = parse_client_message(data)
        except ProtocolError as e:
            logger.warning(f"Bad message from {context.player_id}: {e}")
            self.socketio.emit('error', {'code': 'BAD_MESSAGE', 'message': str(e)}, room=sid)
            return

        # 3. Find Match
        match = self.match_registry.get_match(context.match_id)
        if not match:
            logger.warning(f"Match {context.match_id} not found for {context.player_id}")
            self.socketio.emit('error', {'code': 'NOT_IN_MATCH', 'message': 'Match no longer exists'}, room=sid)
            return

        # 4. Handle and emit under the match lock so each player sees messages in order
        try:
            with match.lock:
                response = match.handle_event(message, context)
                if response:
                    self._process_response(context.match_id, response, context)
        except Exception as e:
            logger.exception(f"Error handling {message.TYPE} in match {context.match_id}: {e}")
            self.socketio.emit('error', {'code': 'GAME_ERROR', 'message': str(e)}, room=sid)

    def _process_response(self, match_id: str, response: Optional[EventResponse],
                          context: Optional[EventContext] = None):
        """
        Emit events based on EventResponse.
        """
        if not response:
            return

        # 1. Protocol messages, per player
        for player_id, messages in response.to_player.items():
            room = player_room(match_id, player_id)
            for message in messages:
                self.socketio.emit('message', message.to_dict(), room=room)

        # 2. Error (to sender)
        if response.error and context and context.session_id:
            self.socketio.emit('error', response.error, room=context.session_id)
