from datetime import timedelta

from database import JobState
from tests.conftest import TOKEN


def _submit(client, **fields):
    data = {"ecs": "web1", "cmd": "echo hi", "token": TOKEN}
    data.update(fields)
    return client.post("/cmd", data=data)


def test_submit_job_queues_for_bound_host(client, jobs, tags):
    tags.bind("web1", "host-a")

    resp = _submit(client)

    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == "get it"
    [job] = jobs.list_jobs()
    assert job.hostname == "host-a"
    assert job.shell == "echo hi"
    assert job.state == JobState.TO_SCHEDULE


def test_submit_job_accepts_query_parameters(client, jobs, tags):
    tags.bind("web1", "host-a")
    resp = client.post(f"/cmd?ecs=web1&cmd=uptime&token={TOKEN}")
    assert resp.status_code == 200
    assert jobs.list_jobs()[0].shell == "uptime"


def test_submit_job_unknown_tag(client, jobs):
    resp = _submit(client, ecs="nope")
    assert resp.status_code == 400
    assert jobs.list_jobs() == []


def test_submit_job_bad_token(client, jobs, tags):
    tags.bind("web1", "host-a")
    resp = _submit(client, token="wrong")
    assert resp.status_code == 401
    assert jobs.list_jobs() == []


def test_submit_job_missing_command(client, jobs, tags):
    tags.bind("web1", "host-a")
    resp = _submit(client, cmd="")
    assert resp.status_code == 400
    assert jobs.list_jobs() == []


def test_submit_job_store_failure(client, app, tags, monkeypatch):
    from errors import StoreError

    tags.bind("web1", "host-a")
    dispatcher = app.extensions["remotecmd"]["dispatcher"]

    def broken(hostname, shell):
        raise StoreError("db down")

    monkeypatch.setattr(dispatcher.jobs, "create_job", broken)
    resp = _submit(client)
    assert resp.status_code == 500


def test_online_lists_recent_hosts_and_evicts_stale(client, presence, clock):
    presence.touch("host-old")
    clock.advance(25)
    presence.touch("host-new")
    clock.advance(10)

    body = client.get("/online").get_json()

    assert body["count"] == 1
    assert list(body["list"]) == ["host-new"]
    assert body["list"]["host-new"] == (clock.now - timedelta(seconds=10)).isoformat()
    assert "host-old" not in presence.snapshot(ttl=3600)


def test_online_empty(client):
    assert client.get("/online").get_json() == {"count": 0, "list": {}}


def test_job_api(client, jobs):
    job_id = jobs.create_job("host-a", "ls")
    jobs.record_result(job_id, True, "a\nb\n")

    listing = client.get("/api/jobs?state=succeeded").get_json()
    assert [j["id"] for j in listing] == [job_id]

    job = client.get(f"/api/jobs/{job_id}").get_json()
    assert job["state"] == "succeeded"
    assert job["result"] == "a\nb\n"

    assert client.get("/api/jobs/999").status_code == 404
    assert client.get("/api/jobs?state=bogus").status_code == 400


def test_job_api_negative_limit_returns_one(client, jobs):
    jobs.create_job("host-a", "ls")
    jobs.create_job("host-a", "pwd")

    assert len(client.get("/api/jobs?limit=-1").get_json()) == 1
    assert len(client.get("/api/jobs?limit=0").get_json()) == 1
