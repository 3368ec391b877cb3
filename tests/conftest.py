"""Shared fakes: a manual timer clock, a scripted Socket.IO client and an HTTP stub."""

import itertools

import pytest
import requests
import socketio

from mineduel.engine.board import Cell, neighbors


def build_board(*rows):
    """Board from strings: '*' is a mine, anything else is safe."""
    height, width = len(rows), len(rows[0])
    mines = {(r, c) for r, row in enumerate(rows) for c, ch in enumerate(row) if ch == '*'}
    board = []
    for r in range(height):
        cells = []
        for c in range(width):
            if (r, c) in mines:
                cells.append(Cell(is_mine=True))
            else:
                count = sum(1 for pos in neighbors(r, c, height, width) if pos in mines)
                cells.append(Cell(adjacent_mines=count))
        board.append(cells)
    return board


# =============================================================================
# TIMERS
# =============================================================================

class FakeTimer:
    def __init__(self, scheduler, interval, function, args=None, kwargs=None):
        self.scheduler = scheduler
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.cancelled = False
        self.due = None
        self.seq = None

    def start(self):
        self.scheduler.add(self)

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Stands in for threading.Timer; time only moves when advance() is called."""

    def __init__(self):
        self.now = 0.0
        self.timers = []
        self._seq = itertools.count()

    def __call__(self, interval, function, args=None, kwargs=None):
        return FakeTimer(self, interval, function, args, kwargs)

    def add(self, timer):
        timer.due = self.now + timer.interval
        timer.seq = next(self._seq)
        self.timers.append(timer)

    def clock(self):
        return self.now

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.timers.remove(timer)
            self.now = max(self.now, timer.due)
            timer.function(*timer.args, **timer.kwargs)
        self.now = target
        self.timers = self.pending


# =============================================================================
# SOCKET.IO CLIENT
# =============================================================================

class FakeSocketClient:
    def __init__(self, factory, options):
        self.factory = factory
        self.options = options
        self.handlers = {}
        self.emitted = []
        self.connected = False
        self.url = None
        self.auth = None

    def on(self, event, handler=None):
        self.handlers[event] = handler

    def connect(self, url, auth=None, **kwargs):
        self.url = url
        self.auth = auth
        if self.factory.refuse:
            self.factory.refuse -= 1
            raise socketio.exceptions.ConnectionError('Connection refused by the server')
        self.connected = True
        self.handlers['connect']()

    def emit(self, event, data=None):
        if not self.connected:
            raise socketio.exceptions.BadNamespaceError('/ is not a connected namespace.')
        self.emitted.append((event, data))

    def disconnect(self):
        was_connected = self.connected
        self.connected = False
        if was_connected:
            self.handlers['disconnect']('client disconnect')

    # Test controls

    def drop(self):
        self.connected = False
        self.handlers['disconnect']('transport close')

    def receive(self, data):
        self.handlers['message'](data)

    def sent(self):
        return [data for event, data in self.emitted if event == 'message']


class FakeSocketFactory:
    def __init__(self):
        self.clients = []
        self.refuse = 0

    def __call__(self, **options):
        client = FakeSocketClient(self, options)
        self.clients.append(client)
        return client

    @property
    def last(self):
        return self.clients[-1]


# =============================================================================
# HTTP
# =============================================================================

class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeHttp:
    """Ticket endpoint stub; each successful call hands out a new ticket."""

    def __init__(self):
        self.calls = []
        self.failures = 0
        self.status_code = 200

    def post(self, url, headers=None, timeout=None):
        self.calls.append({'url': url, 'headers': headers, 'timeout': timeout})
        if self.failures:
            self.failures -= 1
            raise requests.ConnectionError('ticket service unreachable')
        if self.status_code != 200:
            return FakeResponse(self.status_code, {'error': 'nope'})
        return FakeResponse(200, {'ticket': f'ticket-{len(self.calls)}'})


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def socket_factory():
    return FakeSocketFactory()


@pytest.fixture
def http():
    return FakeHttp()
