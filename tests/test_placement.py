import time

import pytest

from microceph.placement import (
    GenericServicePlacement,
    RgwServicePlacement,
    enable_service,
    generic_db_update,
    generic_hospitality_check,
    generic_post_placement_check,
    generic_service_init,
    get_add_service_table,
    get_service_placement_table,
    service_placement_handler,
)
from microceph.rgw import NodeState, ServiceStore
from microceph.runner import CommandError, set_runner
from microceph.types import EnableService


class FakeRunner:
    def __init__(self, responses=None, fail=()):
        self.calls = []
        self.responses = responses or {}
        self.fail = set(fail)

    def run_command(self, name, *args):
        call = (name, *args)
        self.calls.append(call)
        if name in self.fail:
            raise CommandError("boom", command=call, exit_code=1)
        return self.responses.get(call, "ok")

    def run_command_context(self, timeout, name, *args):
        return self.run_command(name, *args)


@pytest.fixture
def install_runner():
    previous = []

    def install(fake):
        previous.append(set_runner(fake))
        return fake

    yield install
    for old in reversed(previous):
        set_runner(old)


class FakePlacement:
    def __init__(self, failing=None):
        self.failing = failing
        self.calls = []

    def _step(self, name):
        self.calls.append(name)
        if name == self.failing:
            raise RuntimeError("ERROR")

    def populate_params(self, state, payload):
        self._step("populate_params")

    def hospitality_check(self, state):
        self._step("hospitality_check")

    def service_init(self, state):
        self._step("service_init")

    def post_placement_check(self, state):
        self._step("post_placement_check")

    def db_update(self, state):
        self._step("db_update")


def test_unknown_service_failure():
    payload = EnableService(name="unknowService", wait=True, payload="")
    with pytest.raises(ValueError, match="enablement is not supported"):
        service_placement_handler(None, payload)


def test_ill_structured_payload_failure():
    payload = EnableService(name="rgw", wait=True, payload='"Port":80')
    with pytest.raises(RuntimeError, match="failed to populate the payload"):
        service_placement_handler(None, payload)


def test_hospitality_check_failure(install_runner):
    runner = install_runner(
        FakeRunner(responses={("snapctl", "services", "microceph.rgw"): "active"})
    )
    payload = EnableService(name="rgw", wait=True, payload='{"Port":80}')
    with pytest.raises(RuntimeError, match="host failed hospitality check"):
        service_placement_handler(None, payload)
    assert runner.calls == [("snapctl", "services", "microceph.rgw")]


@pytest.mark.parametrize(
    "failing, message, expected_calls",
    [
        ("service_init", "failed to initialise", 3),
        ("post_placement_check", "service unable to sustain on host", 4),
        ("db_update", "failed to add DB record for", 5),
    ],
)
def test_enable_service_step_failures(failing, message, expected_calls):
    item = FakePlacement(failing)
    payload = EnableService(name="mon", wait=True)
    with pytest.raises(RuntimeError, match=message):
        enable_service(None, payload, item)
    assert len(item.calls) == expected_calls


def test_enable_service_runs_all_steps_in_order():
    item = FakePlacement()
    enable_service(None, EnableService(name="mon", wait=True), item)
    assert item.calls == [
        "populate_params",
        "hospitality_check",
        "service_init",
        "post_placement_check",
        "db_update",
    ]


def test_placement_tables():
    table = get_service_placement_table()
    assert set(table) == {"mon", "mgr", "mds", "rgw"}
    assert table["mgr"] == GenericServicePlacement("mgr")
    assert isinstance(table["rgw"], RgwServicePlacement)
    assert set(get_add_service_table()) == {"mon", "mgr", "mds"}


def test_rgw_populate_params_reads_port():
    placement = RgwServicePlacement()
    placement.populate_params(None, '{"port": 8080}')
    assert placement.port == 8080


def test_rgw_populate_params_rejects_non_object():
    with pytest.raises(ValueError):
        RgwServicePlacement().populate_params(None, "[1, 2]")


def test_hospitality_check_passes_when_inactive(install_runner):
    runner = install_runner(
        FakeRunner(responses={("snapctl", "services", "microceph.mgr"): "microceph.mgr inactive"})
    )
    generic_hospitality_check("mgr")
    assert runner.calls == [("snapctl", "services", "microceph.mgr")]


def test_post_placement_check_detects_inactive(install_runner, monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda seconds: None)
    install_runner(
        FakeRunner(responses={("snapctl", "services", "microceph.mds"): "inactive"})
    )
    with pytest.raises(RuntimeError, match="mds service is not active"):
        generic_post_placement_check("mds")


def test_post_placement_check_polls_four_times(install_runner, monkeypatch):
    sleeps = []
    monkeypatch.setattr(time, "sleep", sleeps.append)
    runner = install_runner(FakeRunner())
    generic_post_placement_check("mgr")
    assert sleeps == [4, 3, 2, 1]
    assert len(runner.calls) == 4


def test_generic_service_init_mgr(install_runner, tmp_path, monkeypatch):
    monkeypatch.setenv("SNAP_COMMON", str(tmp_path))
    monkeypatch.setenv("SNAP_DATA", str(tmp_path))
    runner = install_runner(FakeRunner())
    generic_service_init(NodeState(name="node1"), "mgr")
    data_path = tmp_path / "data" / "mgr" / "ceph-node1"
    assert data_path.is_dir()
    assert runner.calls[0][:4] == ("ceph", "auth", "get-or-create", "mgr.node1")
    assert runner.calls[-1] == ("snapctl", "start", "microceph.mgr", "--enable")


def test_generic_service_init_unregistered():
    with pytest.raises(ValueError, match="not registered"):
        generic_service_init(NodeState(name="node1"), "rgw")


def test_generic_db_update_records_service():
    store = ServiceStore()
    generic_db_update(NodeState(name="node1", database=store), "mds")
    assert [(s.service, s.location) for s in store.get_services()] == [("mds", "node1")]
    with pytest.raises(RuntimeError, match="failed to record role"):
        generic_db_update(NodeState(name="node1", database=store), "mds")


def test_generic_db_update_without_database():
    with pytest.raises(RuntimeError, match="^no database$"):
        generic_db_update(NodeState(name="node1"), "mon")