"""
Wire messages exchanged with agents over the /ws channel.

On the wire a poll is a result frame whose id is 0; inside the server every
frame is parsed into one of the tagged variants below so the sentinel never
leaks past this module.
"""
import json
from dataclasses import dataclass, asdict
from typing import Union

from database import NO_JOB_ID
from errors import ValidationError

HEARTBEAT_TYPE = "ping"

# Largest id the jobs table can hold (signed 64-bit)
MAX_JOB_ID = 2**63 - 1


@dataclass
class Heartbeat:
    hostname: str


@dataclass
class Poll:
    hostname: str


@dataclass
class Result:
    id: int
    is_success: bool
    stdout: str
    hostname: str


@dataclass
class Cmd:
    """Reply to a poll; id 0 means nothing to do."""
    id: int = NO_JOB_ID
    context: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self))


Message = Union[Heartbeat, Poll, Result]


def parse_message(raw) -> Message:
    """Decode one inbound frame, raising ValidationError when it is malformed."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid json frame: {e}")
    if not isinstance(data, dict):
        raise ValidationError("frame must be a json object")

    hostname = data.get("hostname", "")
    if not isinstance(hostname, str):
        raise ValidationError("hostname must be a string")

    if data.get("type") == HEARTBEAT_TYPE:
        if not hostname:
            raise ValidationError("heartbeat without hostname")
        return Heartbeat(hostname=hostname)

    job_id = data.get("id", NO_JOB_ID)
    # bool is an int subclass; reject it explicitly
    if isinstance(job_id, bool) or not isinstance(job_id, int) \
            or not NO_JOB_ID <= job_id <= MAX_JOB_ID:
        raise ValidationError(f"invalid job id: {job_id!r}")

    if job_id == NO_JOB_ID:
        return Poll(hostname=hostname)

    stdout = data.get("stdout", "")
    if not isinstance(stdout, str):
        raise ValidationError("stdout must be a string")
    is_success = data.get("is_success", False)
    if not isinstance(is_success, bool):
        raise ValidationError(f"is_success must be a boolean, got {is_success!r}")
    return Result(
        id=job_id,
        is_success=is_success,
        stdout=stdout,
        hostname=hostname,
    )


def poll_frame(hostname: str) -> str:
    return json.dumps({"id": NO_JOB_ID, "hostname": hostname})


def result_frame(result: Result) -> str:
    return json.dumps(asdict(result))


def parse_cmd(raw) -> Cmd:
    """Decode a poll reply on the agent side."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid reply: {e}")
    if not isinstance(data, dict):
        raise ValidationError("reply must be a json object")
    return Cmd(id=int(data.get("id", NO_JOB_ID)), context=data.get("context") or "")
