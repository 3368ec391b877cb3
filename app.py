"""
Mine Duel - Main Flask Application
Entry point for the match authority server.
"""

import os
import logging
import argparse
from flask import Flask, jsonify, request
from flask_socketio import SocketIO

from mineduel.core.session_manager import SessionManager, validate_player_name
from mineduel.core.event_router import EventRouter
from mineduel.matches.match_registry import MatchRegistry
from events import register_events

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

COUNTDOWN_SECONDS = int(os.environ.get('COUNTDOWN_SECONDS', '5'))
RECONNECT_GRACE_SECONDS = float(os.environ.get('RECONNECT_GRACE_SECONDS', '10'))
TICKET_TTL_SECONDS = float(os.environ.get('TICKET_TTL_SECONDS', '30'))

# Initialize Flask app
app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'mineduel-dev-secret')

# Initialize Socket.IO with CORS for browser clients on other origins
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

# Initialize System
session_manager = SessionManager(ticket_ttl_seconds=TICKET_TTL_SECONDS)
match_registry = MatchRegistry(
    countdown_seconds=COUNTDOWN_SECONDS,
    grace_seconds=RECONNECT_GRACE_SECONDS,
)
event_router = EventRouter(socketio, session_manager, match_registry)

# Register Socket.IO event handlers
register_events(socketio, event_router)


# =============================================================================
# HTTP ROUTES
# =============================================================================

def _bearer_identity():
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    return header[len('Bearer '):].strip() or None


@app.route('/health')
def health():
    """Health check endpoint."""
    return {
        'status': 'ok',
        'matches_count': len(match_registry.get_all_matches()),
        'sessions_count': len(session_manager.sessions)
    }


@app.route('/ws/ticket', methods=['POST'])
def ws_ticket():
    """Issue a single-use Socket.IO connection ticket for the bearer."""
    identity = _bearer_identity()
    if not identity:
        return jsonify({'error': 'Unauthorized'}), 401

    result = session_manager.issue_ticket(identity)
    if not result['success']:
        return jsonify({'error': result['message']}), 400

    return jsonify({'ticket': result['ticket'], 'expiresIn': result['expires_in']})


@app.route('/matches', methods=['POST'])
def create_match():
    """Pair two players in a new match."""
    data = request.get_json(silent=True) or {}
    players = data.get('players')
    if not isinstance(players, list) or len(players) != 2:
        return jsonify({'error': 'players must list exactly two names'}), 400

    names = [validate_player_name(p) for p in players]
    if not all(names):
        return jsonify({'error': 'Player names must be 1-20 letters, digits or underscores'}), 400
    if names[0] == names[1]:
        return jsonify({'error': 'A player cannot be matched against themselves'}), 400

    match = match_registry.create_match(names[0], names[1])
    return jsonify({'matchId': match.match_id}), 201


@app.route('/matches/<match_id>')
def get_match(match_id):
    """Public state of one match. Boards are never included."""
    match = match_registry.get_match(match_id)
    if not match:
        return jsonify({'error': 'Match not found'}), 404
    return jsonify(match.get_sanitized_state_data())


# =============================================================================
# MAIN
# =============================================================================

def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Mine Duel match authority server')
    parser.add_argument(
        '--port',
        type=int,
        default=8765,
        help='Server port (default: 8765)'
    )
    parser.add_argument(
        '--no-debug',
        action='store_true',
        help='Disable debug mode'
    )
    return parser.parse_args()


if __name__ == '__main__':
    args = parse_args()

    logger.info("Starting Mine Duel server...")
    logger.info(f"Tickets: POST http://<your-ip>:{args.port}/ws/ticket")
    logger.info(f"Matches: POST http://<your-ip>:{args.port}/matches")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=args.port,
            debug=not args.no_debug,
            allow_unsafe_werkzeug=True
        )
    finally:
        match_registry.close_all()
        session_manager.shutdown()
