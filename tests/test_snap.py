import pytest

from microceph.runner import CommandError, set_runner
from microceph.snap import (
    is_intf_connected,
    snap_check_active,
    snap_restart,
    snap_start,
    snap_stop,
)


class FakeRunner:
    def __init__(self, output="ok", fail=False):
        self.calls = []
        self.output = output
        self.fail = fail

    def run_command(self, name, *args):
        call = (name, *args)
        self.calls.append(call)
        if self.fail:
            raise CommandError("boom", command=call, exit_code=1)
        return self.output

    def run_command_context(self, timeout, name, *args):
        return self.run_command(name, *args)


@pytest.fixture
def use_runner():
    installed = []

    def install(runner):
        installed.append(set_runner(runner))
        return runner

    yield install
    if installed:
        set_runner(installed[0])


def test_snap_start_enable(use_runner):
    runner = use_runner(FakeRunner())
    snap_start("mon", True)
    snap_start("mgr", False)
    assert runner.calls == [
        ("snapctl", "start", "microceph.mon", "--enable"),
        ("snapctl", "start", "microceph.mgr"),
    ]


def test_snap_stop_disable(use_runner):
    runner = use_runner(FakeRunner())
    snap_stop("rgw", True)
    assert runner.calls == [("snapctl", "stop", "microceph.rgw", "--disable")]


def test_snap_restart(use_runner):
    runner = use_runner(FakeRunner())
    snap_restart("osd", True)
    snap_restart("mon", False)
    assert runner.calls == [
        ("snapctl", "restart", "--reload", "microceph.osd"),
        ("snapctl", "restart", "microceph.mon"),
    ]


def test_snap_start_failure_propagates(use_runner):
    use_runner(FakeRunner(fail=True))
    with pytest.raises(CommandError):
        snap_start("mon", True)


def test_check_active_ok(use_runner):
    runner = use_runner(FakeRunner(output="active"))
    assert snap_check_active("rgw") is None
    assert runner.calls == [("snapctl", "services", "microceph.rgw")]


def test_check_active_inactive(use_runner):
    use_runner(FakeRunner(output="microceph.rgw  disabled  inactive"))
    with pytest.raises(RuntimeError, match="rgw service is not active"):
        snap_check_active("rgw")


def test_check_active_command_failure(use_runner):
    use_runner(FakeRunner(fail=True))
    with pytest.raises(CommandError):
        snap_check_active("mon")


def test_is_intf_connected(use_runner):
    runner = use_runner(FakeRunner())
    assert is_intf_connected("dm-crypt") is True
    assert runner.calls == [("snapctl", "is-connected", "dm-crypt")]


def test_is_intf_not_connected(use_runner):
    use_runner(FakeRunner(fail=True))
    assert is_intf_connected("dm-crypt") is False