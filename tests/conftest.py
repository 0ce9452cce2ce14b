"""
Shared fixtures: a fresh in-memory database per test, a controllable clock
and a scripted transport standing in for a WebSocket.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from database import initialize_db, make_engine
from errors import TransportError
from presence import PresenceRegistry
from storage import JobStorage, TagDirectory
from web_server import create_app

TOKEN = "s3cret"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class PingFrame:
    def __init__(self, payload: bytes):
        self.payload = payload


class FakeTransport:
    """
    Feeds `inbound` frames in order, then behaves like a dropped connection.
    PingFrame entries go to the on_ping callback instead of receive().
    """

    def __init__(self, inbound=()):
        self.inbound = list(inbound)
        self.sent = []
        self.pings = []
        self.ping_callback = None
        self.closed = False

    def receive(self):
        while self.inbound and isinstance(self.inbound[0], PingFrame):
            frame = self.inbound.pop(0)
            if self.ping_callback:
                self.ping_callback(frame.payload)
        if not self.inbound:
            raise TransportError("connection closed")
        return self.inbound.pop(0)

    def ping(self, payload):
        self.pings.append(payload)

    def on_ping(self, callback):
        self.ping_callback = callback

    def send(self, data):
        if self.closed:
            raise TransportError("send on closed transport")
        self.sent.append(data)

    def close(self):
        self.closed = True


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    initialize_db(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def jobs(session_factory):
    return JobStorage(session_factory)


@pytest.fixture
def tags(session_factory):
    return TagDirectory(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def presence(clock):
    return PresenceRegistry(clock=clock)


@pytest.fixture
def app(jobs, tags, presence):
    app = create_app(TOKEN, jobs=jobs, tags=tags, presence=presence)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
