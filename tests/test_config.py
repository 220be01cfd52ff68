import json

import pytest

from microceph.config import (
    ConfigTableEntry,
    get_config_item,
    get_config_table_service_set,
    get_const_config_table,
    get_monitor_addresses,
    list_configs,
    remove_config_item,
    set_config_item,
)
from microceph.runner import CommandError, set_runner
from microceph.types import Config


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


KEY = "cluster_network"
VALUE = "0.0.0.0/16"


def test_set_config(install):
    cmd = ("ceph", "config", "set", "global", KEY, VALUE, "-f", "json-pretty")
    runner = install({cmd: VALUE})
    set_config_item(Config(key=KEY, value=VALUE))
    assert runner.calls == [cmd]


def test_get_config(install):
    cmd = ("ceph", "config", "get", "mon", KEY)
    runner = install({cmd: VALUE})
    result = get_config_item(Config(key=KEY, value=VALUE))
    assert runner.calls == [cmd]
    assert result == [Config(key=KEY, value=VALUE)]


def test_reset_config(install):
    cmd = ("ceph", "config", "rm", "global", KEY)
    runner = install({cmd: VALUE})
    remove_config_item(Config(key=KEY, value=VALUE))
    assert runner.calls == [cmd]


def test_list_config(install):
    dump = json.dumps([{"Section": "", "Name": KEY, "Value": VALUE}])
    install({("ceph", "config", "dump", "-f", "json-pretty"): dump})
    configs = list_configs()
    assert configs[0].key == KEY
    assert configs[0].value == VALUE


def test_list_config_filters_unsupported_keys(install):
    dump = json.dumps(
        [
            {"section": "global", "name": "mon_allow_pool_size_one", "value": "true"},
            {"section": "global", "name": "osd_pool_default_crush_rule", "value": "1"},
        ]
    )
    install({("ceph", "config", "dump", "-f", "json-pretty"): dump})
    assert list_configs() == [Config(key="osd_pool_default_crush_rule", value="1")]


def test_list_config_ignores_unparsable_output(install):
    install({("ceph", "config", "dump", "-f", "json-pretty"): "not json"})
    assert list_configs() == []


def test_set_config_propagates_command_failure(install):
    install({})
    with pytest.raises(CommandError):
        set_config_item(Config(key=KEY, value=VALUE))


def test_const_config_table():
    table = get_const_config_table()
    assert table[KEY] == ConfigTableEntry("global", ("osd",))
    assert table["osd_pool_default_crush_rule"].daemons == ()
    assert set(table) == {KEY, "osd_pool_default_crush_rule"}


def test_service_set():
    assert get_config_table_service_set() == {"mon", "mgr", "osd", "mds", "rgw"}


def test_monitor_addresses():
    configs = {
        "fsid": "abc",
        "mon.host.node1": "10.0.0.1",
        "mon.host.node2": "10.0.0.2",
        "public_network": "10.0.0.0/24",
    }
    assert sorted(get_monitor_addresses(configs)) == ["10.0.0.1", "10.0.0.2"]
    assert get_monitor_addresses({}) == []