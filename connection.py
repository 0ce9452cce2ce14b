"""
Per-agent protocol loop for the /ws channel.

Each connected agent gets its own ConnectionHandler running on the request
thread. The handler is stateless between frames apart from the transport: a
heartbeat refreshes presence, a poll is answered with the next pending job,
a result is recorded without a reply. Any failure closes the connection.

Heartbeats normally arrive as WebSocket ping frames carrying the hostname;
a `{"type": "ping", "hostname": ...}` text frame is accepted as well.
"""
import enum

from simple_websocket import ConnectionClosed
from wsproto.events import Ping

from errors import StoreError, TransportError, ValidationError
from log_setup import get_logger
from models import Cmd, Heartbeat, Poll, Result, parse_message
from presence import PresenceRegistry
from storage import JobStorage

log = get_logger("connection")


class ConnectionState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class _PingTap:
    """
    Wraps the wsproto connection of a simple-websocket object and reports the
    payload of every inbound ping before the library answers it with a pong.
    """

    def __init__(self, conn, on_ping):
        self._conn = conn
        self._on_ping = on_ping

    def events(self):
        for event in self._conn.events():
            if isinstance(event, Ping):
                self._on_ping(bytes(event.payload))
            yield event

    def __getattr__(self, name):
        return getattr(self._conn, name)


class WebSocketTransport:
    """Adapts a simple-websocket Server or Client to receive()/send()/close()."""

    def __init__(self, ws):
        self.ws = ws

    def receive(self):
        try:
            data = self.ws.receive()
        except (ConnectionClosed, OSError) as e:
            raise TransportError(str(e)) from e
        if data is None:
            raise TransportError("connection closed")
        return data

    def send(self, data: str):
        try:
            self.ws.send(data)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(str(e)) from e

    def ping(self, payload: str):
        """Send a ping control frame; the hostname travels as its payload."""
        if not self.ws.connected:
            raise TransportError("connection closed")
        try:
            self.ws.sock.send(self.ws.ws.send(Ping(payload=payload.encode())))
        except OSError as e:
            raise TransportError(str(e)) from e

    def on_ping(self, callback):
        """
        Call `callback(payload_bytes)` for every ping received from now on.

        Runs on simple-websocket's reader thread.
        """
        self.ws.ws = _PingTap(self.ws.ws, callback)

    def close(self):
        try:
            self.ws.close()
        except (ConnectionClosed, OSError):
            pass


class ConnectionHandler:
    def __init__(self, transport, jobs: JobStorage, presence: PresenceRegistry):
        self.transport = transport
        self.jobs = jobs
        self.presence = presence
        self.state = ConnectionState.OPEN
        self.hostname = None

    def serve(self):
        """Process frames until the connection fails; never raises."""
        self.transport.on_ping(self.handle_ping)
        try:
            while self.state is ConnectionState.OPEN:
                raw = self.transport.receive()
                self.handle(parse_message(raw))
        except TransportError as e:
            log.info(f"connection from {self.hostname or 'unknown host'} closed: {e}")
        except ValidationError as e:
            log.warning(f"malformed frame from {self.hostname or 'unknown host'}: {e}")
        except StoreError as e:
            log.error(f"store failure, dropping connection from {self.hostname or 'unknown host'}: {e}")
        finally:
            self.close()

    def handle_ping(self, payload: bytes):
        hostname = payload.decode("utf-8", errors="replace")
        # Pings without a hostname are plain keepalives
        if hostname:
            self.presence.touch(hostname)

    def handle(self, message):
        if message.hostname:
            self.hostname = message.hostname

        if isinstance(message, Heartbeat):
            self.presence.touch(message.hostname)
        elif isinstance(message, Poll):
            self.transport.send(self.next_command(message.hostname).to_json())
        elif isinstance(message, Result):
            self.jobs.record_result(message.id, message.is_success, message.stdout)

    def next_command(self, hostname: str) -> Cmd:
        job = self.jobs.next_pending_job(hostname)
        if job is None:
            return Cmd()
        log.debug(f"dispatching job {job.id} to {hostname}")
        return Cmd(id=job.id, context=job.shell)

    def close(self):
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.transport.close()
