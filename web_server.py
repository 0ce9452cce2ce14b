import hmac

from flask import Flask, jsonify, request
from flask_sock import Sock

from connection import ConnectionHandler, WebSocketTransport
from database import JobState
from dispatcher import Dispatcher
from errors import AuthError, NotFoundError, StoreError, ValidationError
from log_setup import get_logger
from presence import DEFAULT_TTL, PresenceRegistry
from storage import JobStorage, TagDirectory

log = get_logger("web")


def create_app(token: str, jobs: JobStorage = None, tags: TagDirectory = None,
               presence: PresenceRegistry = None, presence_ttl: float = DEFAULT_TTL,
               ping_interval: float = 25):
    app = Flask(__name__)
    # Server-side pings detect dead agents at the transport level
    app.config["SOCK_SERVER_OPTIONS"] = {"ping_interval": ping_interval}
    sock = Sock(app)

    if jobs is None:
        jobs = JobStorage()
    if tags is None:
        tags = TagDirectory()
    if presence is None:
        presence = PresenceRegistry()
    dispatcher = Dispatcher(jobs, tags)

    app.extensions["remotecmd"] = {
        "jobs": jobs,
        "tags": tags,
        "presence": presence,
        "dispatcher": dispatcher,
    }

    @app.errorhandler(ValidationError)
    @app.errorhandler(NotFoundError)
    def client_error(e):
        return str(e), 400

    @app.errorhandler(AuthError)
    def unauthorized(e):
        return str(e), 401

    @app.errorhandler(StoreError)
    def store_error(e):
        log.error(f"{request.method} {request.path} failed: {e}")
        return "internal server error", 500

    @sock.route("/ws")
    def agent_channel(ws):
        ConnectionHandler(WebSocketTransport(ws), jobs, presence).serve()

    @app.route("/cmd", methods=["POST"])
    def send_cmd():
        tag = request.values.get("ecs", "")
        cmd = request.values.get("cmd", "")
        supplied = request.values.get("token", "")
        if not tag or not cmd:
            raise ValidationError("ecs and cmd are required")
        if not hmac.compare_digest(supplied.encode(), token.encode()):
            raise AuthError("bad token")
        dispatcher.submit_job(tag, cmd)
        return "get it", 200

    @app.route("/online")
    def online():
        hosts = presence.snapshot(presence_ttl)
        return jsonify({
            "count": len(hosts),
            "list": {host: seen.isoformat() for host, seen in hosts.items()},
        })

    @app.route("/api/jobs")
    def api_jobs():
        state = request.args.get("state")
        try:
            state = JobState[state.upper()] if state else None
        except KeyError:
            raise ValidationError(f"unknown state: {state}")
        limit = request.args.get("limit", 50, type=int)
        rows = jobs.list_jobs(state=state, hostname=request.args.get("hostname"), limit=limit)
        return jsonify([j.to_dict() for j in rows])

    @app.route("/api/jobs/<int:job_id>")
    def api_job(job_id):
        job = jobs.get_job(job_id)
        if job is None:
            return jsonify({"error": "job not found"}), 404
        return jsonify(job.to_dict())

    return app
