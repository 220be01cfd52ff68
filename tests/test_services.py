import json

import pytest

from microceph.runner import CommandError, set_runner
from microceph.services import (
    clean_service,
    get_mons,
    get_up_osds,
    restart_ceph_service,
    restart_ceph_services,
)


class FakeRunner:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def run_command(self, name, *args):
        command = (name, *args)
        self.calls.append(command)
        if command not in self.responses:
            raise CommandError("unexpected command", command=command)
        result = self.responses[command]
        if callable(result):
            result = result()
        if isinstance(result, Exception):
            raise result
        return result

    def run_command_context(self, timeout, name, *args):
        return self.run_command(name, *args)


@pytest.fixture
def install():
    previous = []

    def _install(responses):
        runner = FakeRunner(responses)
        previous.append(set_runner(runner))
        return runner

    yield _install
    if previous:
        set_runner(previous[0])


OSD_DUMP = ("ceph", "osd", "dump", "-f", "json-pretty")
MON_DUMP = ("ceph", "mon", "dump", "-f", "json-pretty")
OSD_JSON = json.dumps({"osds": [{"up": 1, "uuid": "bfbbd27a-472f-4771-a6f7-7c5db9803d41"}]})
MON_JSON = json.dumps({"mons": [{"name": "bfbbd27a"}]})


def test_restart_invalid_service():
    with pytest.raises(ValueError, match="No handler defined"):
        restart_ceph_service("InvalidService")


def test_restart_service_worker_success(install):
    runner = install(
        {
            OSD_DUMP: OSD_JSON,
            MON_DUMP: MON_JSON,
            ("snapctl", "restart", "microceph.mon"): "ok",
            ("snapctl", "restart", "microceph.osd"): "ok",
        }
    )
    restart_ceph_services(["mon", "osd"])
    assert runner.calls == [
        MON_DUMP,
        ("snapctl", "restart", "microceph.mon"),
        MON_DUMP,
        OSD_DUMP,
        ("snapctl", "restart", "microceph.osd"),
        OSD_DUMP,
    ]


def test_get_mons(install):
    install({MON_DUMP: json.dumps({"mons": [{"name": "a"}, {"name": "b"}]})})
    assert get_mons() == {"a", "b"}


def test_get_up_osds_filters_down(install):
    dump = json.dumps(
        {"osds": [{"up": 1, "uuid": "uuid-up"}, {"up": 0, "uuid": "uuid-down"}]}
    )
    install({OSD_DUMP: dump})
    assert get_up_osds() == {"uuid-up"}


def test_get_mons_failure_propagates(install):
    install({MON_DUMP: CommandError("boom")})
    with pytest.raises(CommandError):
        get_mons()


def test_restart_waits_for_workers(install, monkeypatch):
    sleeps = []
    monkeypatch.setattr("microceph.services.time.sleep", sleeps.append)
    answers = iter([MON_JSON, json.dumps({"mons": []}), MON_JSON])
    runner = install(
        {
            MON_DUMP: lambda: next(answers),
            ("snapctl", "restart", "microceph.mon"): "ok",
        }
    )
    result = restart_ceph_service("mon")
    assert result is None
    assert sleeps == [10.0]
    assert runner.calls.count(MON_DUMP) == 3
    assert runner.calls[1] == ("snapctl", "restart", "microceph.mon")


def test_restart_gives_up(install, monkeypatch):
    sleeps = []
    monkeypatch.setattr("microceph.services.time.sleep", sleeps.append)
    answers = iter([MON_JSON] + [json.dumps({"mons": []})] * 20)
    runner = install(
        {
            MON_DUMP: lambda: next(answers),
            ("snapctl", "restart", "microceph.mon"): "ok",
        }
    )
    with pytest.raises(RuntimeError, match="not all present"):
        restart_ceph_service("mon")
    assert runner.calls.count(MON_DUMP) == 11
    assert len(sleeps) == 9


def test_clean_service(tmp_path, monkeypatch):
    monkeypatch.setenv("SNAP_COMMON", str(tmp_path / "SNAP_COMMON"))
    svc_path = tmp_path / "SNAP_COMMON" / "data" / "mon" / "ceph-foo-host"
    svc_path.mkdir(parents=True)
    (svc_path / "keyring").write_text("x")
    result = clean_service("foo-host", "mon")
    assert result is None
    assert not svc_path.exists()
    assert list(svc_path.parent.iterdir()) == []


def test_clean_service_missing_is_fine(tmp_path, monkeypatch):
    monkeypatch.setenv("SNAP_COMMON", str(tmp_path))
    result = clean_service("nohost", "mgr")
    assert result is None
    assert not (tmp_path / "data" / "mgr" / "ceph-nohost").exists()