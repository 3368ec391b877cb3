"""
Socket.IO Event Handlers for Mine Duel.
Connection lifecycle and protocol messages are delegated to the EventRouter.
"""

import logging
from flask import request

logger = logging.getLogger(__name__)

# Global references
event_router = None


def register_events(sio, er):
    """Register all Socket.IO event handlers."""
    global event_router
    event_router = er

    sio.on_event('connect', on_connect)
    sio.on_event('disconnect', on_disconnect)
    sio.on_event('message', on_message)

    logger.info("Socket.IO events registered")


# =============================================================================
# HANDLERS
# =============================================================================

def on_connect(auth=None):
    session_id = request.sid
    logger.info(f"Client connecting: {session_id}")
    if not event_router.handle_connect(session_id, auth):
        return False


def on_disconnect(reason=None):
    session_id = request.sid
    logger.info(f"Client disconnected: {session_id}")
    event_router.handle_disconnect(session_id)


def on_message(data=None):
    event_router.handle_event(data, request.sid)
