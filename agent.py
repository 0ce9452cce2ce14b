"""
Reference agent: keeps one connection to the server, polls for jobs addressed
to its hostname, runs them through the shell and reports the outcome.

Reconnecting after the server drops the connection is left to whatever
supervises the process.
"""
import socket
import time

from simple_websocket import Client, ConnectionClosed

from connection import WebSocketTransport
from database import NO_JOB_ID
from errors import TransportError
from executor import report_text, run_command
from log_setup import get_logger
from models import Result, parse_cmd, poll_frame, result_frame

log = get_logger("agent")


class ClientTransport(WebSocketTransport):
    def __init__(self, url: str):
        try:
            ws = Client.connect(url)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"cannot connect to {url}: {e}") from e
        super().__init__(ws)


class Agent:
    def __init__(self, transport, hostname=None, poll_interval=1.0,
                 heartbeat_interval=10.0, job_timeout=None,
                 clock=time.monotonic, sleep=time.sleep):
        self.transport = transport
        self.hostname = hostname or socket.gethostname()
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.job_timeout = job_timeout
        self._clock = clock
        self._sleep = sleep
        self._last_heartbeat = None

    def heartbeat(self):
        """Transport-level ping whose payload is our hostname."""
        self.transport.ping(self.hostname)
        self._last_heartbeat = self._clock()

    def _heartbeat_due(self):
        return self._last_heartbeat is None or \
            self._clock() - self._last_heartbeat >= self.heartbeat_interval

    def run_once(self) -> bool:
        """One poll cycle. Returns True when a job was executed."""
        if self._heartbeat_due():
            self.heartbeat()

        self.transport.send(poll_frame(self.hostname))
        cmd = parse_cmd(self.transport.receive())
        if cmd.id == NO_JOB_ID:
            return False

        log.info(f"running job {cmd.id}: {cmd.context}")
        outcome = run_command(cmd.context, timeout=self.job_timeout)
        succeeded = outcome["exit_code"] == 0
        self.transport.send(result_frame(Result(
            id=cmd.id,
            is_success=succeeded,
            stdout=report_text(outcome),
            hostname=self.hostname,
        )))
        log.info(f"job {cmd.id} finished with exit code {outcome['exit_code']}")
        return True

    def run_forever(self):
        try:
            while True:
                if not self.run_once():
                    self._sleep(self.poll_interval)
        except TransportError as e:
            log.warning(f"connection lost: {e}")
        finally:
            self.transport.close()
