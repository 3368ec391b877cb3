"""
ConnectionSession: the client's Socket.IO link to the match authority.

Fetches a fresh single-use ticket before every connection attempt, retries
unexpected drops with exponential backoff, queues outgoing messages while
the link is down and flushes them in order once it is back.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, Optional

import requests
import socketio

from ..core.timers import TimerGroup
from ..protocol.channel import MessageHandler, SyncChannel
from ..protocol.messages import ClientMessage, LeaveMessage, ProtocolError, parse_server_message
from ..protocol.types import ConnectionState

logger = logging.getLogger(__name__)


class ConnectionSession(SyncChannel):
    """
    Reconnecting Socket.IO channel.

    connecting -> connected -> reconnecting -> connected | disconnected

    Args:
        server_url: Base URL of the authority server
        match_id: Match to join
        auth_token: Bearer identity presented when fetching tickets
        ticket_url: Ticket endpoint, defaults to ``<server_url>/ws/ticket``
        client_factory: Builds the socketio.Client
        http: requests.Session used for ticket fetches
        timer_factory: threading.Timer compatible factory for backoff delays
        on_state_change: Called with each new ConnectionState
    """

    MAX_RETRIES = 3
    BACKOFF_BASE_SECONDS = 1.0
    TICKET_TIMEOUT_SECONDS = 5

    def __init__(self, server_url: str, match_id: str, auth_token: str,
                 ticket_url: str = None,
                 client_factory: Callable[..., socketio.Client] = socketio.Client,
                 http: requests.Session = None,
                 timer_factory=threading.Timer,
                 on_state_change: Callable[[ConnectionState], None] = None):
        self.server_url = server_url.rstrip('/')
        self.match_id = match_id
        self.auth_token = auth_token
        self.ticket_url = ticket_url or f'{self.server_url}/ws/ticket'
        self._client_factory = client_factory
        self._http = http or requests.Session()
        self._timers = TimerGroup(timer_factory)
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._queue: Deque[ClientMessage] = deque()
        self._client: Optional[socketio.Client] = None
        self._on_message: Optional[MessageHandler] = None
        self._intentional_close = False

        self.connection_state = ConnectionState.CONNECTING
        self.retry_count = 0

    # =========================================================================
    # SyncChannel
    # =========================================================================

    def open(self, on_message: MessageHandler) -> None:
        self._on_message = on_message
        self._connect()

    def send(self, message: ClientMessage) -> None:
        with self._lock:
            if self._intentional_close:
                return
            if self.connection_state == ConnectionState.CONNECTED and self._client:
                try:
                    self._client.emit('message', message.to_dict())
                    return
                except socketio.exceptions.SocketIOError as e:
                    logger.warning(f"Send failed, queueing {message.TYPE}: {e}")
            self._queue.append(message)

    def disconnect(self) -> None:
        with self._lock:
            if self._intentional_close:
                return
            self._intentional_close = True
            client = self._client
            self._client = None
            self._queue.clear()
            self._timers.close()
            if client and self.connection_state == ConnectionState.CONNECTED:
                try:
                    client.emit('message', LeaveMessage().to_dict())
                except socketio.exceptions.SocketIOError as e:
                    logger.info(f"Could not send leave: {e}")

        if client:
            client.disconnect()
        self._transition(ConnectionState.DISCONNECTED)

    @property
    def pending(self) -> int:
        """Messages waiting for the link to come back."""
        return len(self._queue)

    # =========================================================================
    # Connection attempts
    # =========================================================================

    def _fetch_ticket(self) -> str:
        response = self._http.post(
            self.ticket_url,
            headers={'Authorization': f'Bearer {self.auth_token}'},
            timeout=self.TICKET_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        ticket = response.json().get('ticket')
        if not ticket:
            raise requests.RequestException(f"No ticket in response from {self.ticket_url}")
        return ticket

    def _connect(self):
        if self._intentional_close:
            return

        try:
            ticket = self._fetch_ticket()
        except requests.RequestException as e:
            logger.error(f"Ticket fetch failed: {e}")
            self._schedule_retry()
            return

        client = self._client_factory(reconnection=False)
        client.on('connect', lambda: self._handle_connect(client))
        client.on('disconnect', lambda reason=None: self._handle_disconnect(client, reason))
        client.on('message', self._handle_message)

        with self._lock:
            if self._intentional_close:
                return
            self._client = client

        try:
            client.connect(self.server_url, auth={'ticket': ticket, 'matchId': self.match_id})
        except socketio.exceptions.ConnectionError as e:
            logger.error(f"Connection to {self.server_url} failed: {e}")
            with self._lock:
                if self._client is client:
                    self._client = None
            self._schedule_retry()

    def _schedule_retry(self):
        with self._lock:
            if self._intentional_close:
                return
            if self.retry_count >= self.MAX_RETRIES:
                next_state = ConnectionState.DISCONNECTED
            else:
                self.retry_count += 1
                delay = self.BACKOFF_BASE_SECONDS * 2 ** (self.retry_count - 1)
                logger.info(f"Reconnect attempt {self.retry_count}/{self.MAX_RETRIES} in {delay}s")
                self._timers.call_later(delay, self._connect)
                next_state = ConnectionState.RECONNECTING
        self._transition(next_state)

    def _transition(self, state: ConnectionState):
        with self._lock:
            if self.connection_state == state:
                return
            self.connection_state = state
        logger.info(f"Connection {self.match_id}: {state.value}")
        if self._on_state_change:
            self._on_state_change(state)

    # =========================================================================
    # Socket.IO handlers
    # =========================================================================

    def _handle_connect(self, client):
        with self._lock:
            stale = self._intentional_close or self._client is not client
            if not stale:
                self.retry_count = 0
                self.connection_state = ConnectionState.CONNECTED
                while self._queue:
                    client.emit('message', self._queue.popleft().to_dict())

        if stale:
            # disconnect() won the race with the handshake
            client.disconnect()
            return

        logger.info(f"Connection {self.match_id}: connected")
        if self._on_state_change:
            self._on_state_change(ConnectionState.CONNECTED)

    def _handle_disconnect(self, client, reason=None):
        with self._lock:
            if (self._intentional_close or self._client is not client
                    or self.connection_state != ConnectionState.CONNECTED):
                return
            self._client = None
        logger.warning(f"Connection {self.match_id} dropped: {reason or 'unknown reason'}")
        self._schedule_retry()

    def _handle_message(self, data):
        try:
            message = parse_server_message(data)
        except ProtocolError as e:
            logger.error(f"Failed to parse message: {e}")
            return
        if self._on_message:
            self._on_message(message)
