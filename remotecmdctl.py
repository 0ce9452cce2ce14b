import sys

import click

from agent import Agent, ClientTransport
from cli_utils import JOB_HEADERS, job_rows, print_job_table, summary_rows
from config import Config
from database import JobState, init_engine, initialize_db
from dispatcher import Dispatcher
from errors import ConfigError, RemoteCmdError, TransportError
from log_setup import logger
from storage import JobStorage, TagDirectory


def _open_store(cfg: Config):
    dsn = cfg.require("dsn")
    init_engine(dsn)
    initialize_db()


@click.group()
@click.option("--config", "config_path", default=None, help="Path to the JSON config file")
@click.pass_context
def cli(ctx, config_path):
    """remotecmd - dispatch shell commands to connected agents"""
    ctx.obj = Config(path=config_path)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", default=None, type=int, help="Bind port")
@click.pass_obj
def serve(cfg, host, port):
    """Run the HTTP + WebSocket server"""
    from web_server import create_app

    try:
        logger.info("start connect to database")
        _open_store(cfg)
        token = cfg.require("token")
    except ConfigError as e:
        logger.critical(f"init error: {e}")
        sys.exit(1)

    app = create_app(token, presence_ttl=float(cfg.get("presence_ttl")))
    logger.info("start webserver")
    app.run(host=host or cfg.get("host"), port=port or int(cfg.get("port")), threaded=True)


@cli.command("init-db")
@click.pass_obj
def init_db(cfg):
    """Create the jobs and tag tables"""
    try:
        _open_store(cfg)
    except ConfigError as e:
        raise click.ClickException(str(e))
    click.echo("Database initialized")


@cli.group()
def tag():
    """Manage tag -> hostname bindings"""


@tag.command("bind")
@click.argument("tag_name")
@click.argument("hostname")
@click.pass_obj
def tag_bind(cfg, tag_name, hostname):
    try:
        _open_store(cfg)
        TagDirectory().bind(tag_name, hostname)
    except RemoteCmdError as e:
        raise click.ClickException(str(e))
    click.echo(f"Bound {tag_name} -> {hostname}")


@tag.command("list")
@click.pass_obj
def tag_list(cfg):
    try:
        _open_store(cfg)
        bindings = TagDirectory().list_bindings()
    except RemoteCmdError as e:
        raise click.ClickException(str(e))
    if not bindings:
        click.echo("No tags bound.")
        return
    click.echo(print_job_table(["Tag", "Hostname"], [[b.tag, b.hostname] for b in bindings]))


@cli.command()
@click.argument("tag_name")
@click.argument("command")
@click.pass_obj
def submit(cfg, tag_name, command):
    """Queue COMMAND for the host bound to TAG_NAME"""
    try:
        _open_store(cfg)
        job_id = Dispatcher(JobStorage(), TagDirectory()).submit_job(tag_name, command)
    except RemoteCmdError as e:
        raise click.ClickException(str(e))
    click.echo(f"Queued job {job_id}")


@cli.group()
def jobs():
    """Inspect jobs"""


@jobs.command("list")
@click.option("--state", type=click.Choice([s.name.lower() for s in JobState]), default=None)
@click.option("--hostname", default=None)
@click.option("--limit", default=100, type=int)
@click.pass_obj
def jobs_list(cfg, state, hostname, limit):
    try:
        _open_store(cfg)
        store = JobStorage()
        rows = store.list_jobs(state=JobState[state.upper()] if state else None,
                               hostname=hostname, limit=limit)
        counts = store.counts_by_state()
    except RemoteCmdError as e:
        raise click.ClickException(str(e))
    click.echo(print_job_table(["State", "Count"], summary_rows(counts)))
    if not rows:
        click.echo("No jobs found.")
        return
    click.echo(print_job_table(JOB_HEADERS, job_rows(rows)))


@jobs.command("show")
@click.argument("job_id", type=int)
@click.pass_obj
def jobs_show(cfg, job_id):
    try:
        _open_store(cfg)
        job = JobStorage().get_job(job_id)
    except RemoteCmdError as e:
        raise click.ClickException(str(e))
    if job is None:
        raise click.ClickException(f"job {job_id} not found")
    for key, value in job.to_dict().items():
        click.echo(f"{key}: {value}")


@cli.group("config")
def config_group():
    """Show or change settings"""


@config_group.command("show")
@click.pass_obj
def config_show(cfg):
    for k, v in cfg.all().items():
        click.echo(f"{k}: {v}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(cfg, key, value):
    try:
        v = int(value)
    except ValueError:
        try:
            v = float(value)
        except ValueError:
            if value.lower() in ("true", "false"):
                v = value.lower() == "true"
            else:
                v = value
    try:
        cfg.set(key, v)
    except ConfigError as e:
        raise click.ClickException(str(e))
    click.echo(f"Set {key} = {v}")


@cli.command()
@click.option("--url", required=True, help="Server WebSocket URL, e.g. ws://host:8080/ws")
@click.option("--hostname", default=None, help="Hostname to poll for (defaults to this machine's)")
@click.pass_obj
def agent(cfg, url, hostname):
    """Run an agent that executes jobs for this host"""
    try:
        transport = ClientTransport(url)
    except TransportError as e:
        raise click.ClickException(str(e))
    Agent(
        transport,
        hostname=hostname,
        poll_interval=float(cfg.get("agent_poll_interval")),
        heartbeat_interval=float(cfg.get("agent_heartbeat_interval")),
        job_timeout=cfg.get("job_timeout"),
    ).run_forever()


if __name__ == '__main__':
    cli()
