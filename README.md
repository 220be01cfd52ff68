# microceph

Building blocks for running a small Ceph cluster from a snap: rendering
`ceph.conf`, keyrings and the RADOS gateway configuration, driving
`ceph`, `ceph-authtool`, `monmaptool`, `ceph-mon`, `cryptsetup` and
`snapctl`, and managing OSDs, CRUSH failure domains and cluster
services. It has no dependencies outside the standard library.

## Installation

```
pip install .
```

For running the test suite:

```
pip install .[test]
pytest
```

## Running commands

Every external tool is started through one process runner
(`microceph.runner`). The default `Runner` runs the command and returns
its standard output, raising `CommandError` when the command cannot be
started, exits with a non-zero status or times out. `CommandError`
carries the command, `exit_code`, `stdout`, `stderr` and `timed_out`.

```python
from microceph.runner import ceph_run, get_runner

mon_dump = ceph_run("mon", "dump", "-f", "json-pretty")
get_runner().run_command("snapctl", "services", "microceph.mon")
get_runner().run_command_context(30, "dd", "if=/dev/zero", "of=/dev/sdx", "count=1")
```

A different runner can be installed with `set_runner`, which returns the
one it replaces. This is how the tests replace real processes with
canned output:

```python
from microceph.runner import Runner, set_runner

class FakeRunner(Runner):
    def run_command(self, name, *args):
        return "ok"

previous = set_runner(FakeRunner())
```

Directories come from the `SNAP_DATA` and `SNAP_COMMON` environment
variables; `microceph.paths.get_path_const()` returns them as a
`PathConst` (`conf_path`, `run_path`, `data_path`, `log_path`).

## Rendering configuration

`microceph.configwriter` provides writers for `ceph.conf`, keyrings and
`radosgw.conf`. Each is a `ConfigWriter` with a `path`, a `render(data)`
method and `write_config(data, mode)`, which creates the file with the
given mode.

```python
from microceph.configwriter import new_ceph_config, new_ceph_keyring, new_radosgw_config

new_ceph_config("/tmp/conf").write_config(
    {"fsid": "fsid1234", "runDir": "/run/ceph", "monitors": "10.0.0.1",
     "pubNet": "10.0.0.0/24", "ipv4": True, "ipv6": False},
    0o644,
)
new_ceph_keyring("/tmp/conf", "ceph.keyring").write_config(
    {"name": "client.admin", "key": "secret"}, 0o640
)
new_radosgw_config("/tmp/conf").write_config(
    {"monitors": "10.0.0.1", "runDir": "/run/ceph", "rgwPort": 80}, 0o644
)
```

The `[client]` section of `ceph.conf` only gets the rbd cache options
(`isCache`, `cacheSize`, `isCacheWritethrough`, `cacheMaxDirty`,
`cacheTargetDirty`) that are set in the data.

## Keyrings and monitors

`microceph.keyring` wraps `ceph-authtool`, `monmaptool`, `ceph-mon` and
`ceph auth`: `gen_keyring`, `import_keyring`, `gen_auth`,
`gen_monmap`, `add_monmap`, `bootstrap_mon`, `join_mon`, `remove_mon`,
`bootstrap_mgr`/`join_mgr` and `bootstrap_mds`/`join_mds`.
`parse_keyring(path)` reads back the key of the first entry in a keyring
file.

## Cluster configuration

`microceph.config` manages the keys allowed in the monitor's config store
(`cluster_network`, `osd_pool_default_crush_rule`):

```python
from microceph.config import set_config_item, get_config_item, list_configs
from microceph.types import Config

set_config_item(Config(key="cluster_network", value="10.0.0.0/24"))
print(get_config_item(Config(key="cluster_network")))
print(list_configs())
```

`microceph.client_config` maps the rbd cache keys to a `ClientConfigT`;
`get_client_config_for_host(query, hostname)` takes any object with a
`get_all_for_host(hostname)` method returning records with `key` and
`value`.

## Disks, OSDs and services

- `microceph.types` holds the request and response dataclasses
  (`DisksPost`, `DiskAddResponse`, `EnableService`, `Config`,
  `ClientConfig` and others), several with `to_dict`/`from_dict`.
- `microceph.disks` parses loop-file specs such as `loop,4G,3`
  (`parse_backing_spec` returns size in MB and count), creates backing
  files, validates bulk disk requests and prepares wiped or
  LUKS-encrypted devices (`prepare_disk`).
- `microceph.osd` handles removal steps (`reweight_osd`, `out_down_osd`,
  `kill_osd`, `purge_osd`, `safety_check_stop`, `safety_check_destroy`,
  `remove_osd_config`, `wipe_device`), CRUSH failure domain switching
  (`switch_failure_domain`, `update_failure_domain`,
  `is_downgrade_needed`) and `set_replication_factor`.
- `microceph.crush` creates and queries the `microceph_auto_osd` and
  `microceph_auto_host` rules and the default rule for new pools.
- `microceph.snap` starts, stops, restarts and checks snap services.
- `microceph.services` restarts `mon` and `osd` services and waits for
  their daemons to come back; `clean_service` removes a service's data.
- `microceph.rgw` enables and disables the RADOS gateway and deletes
  services from a node, keeping service records in a `ServiceStore`
  attached to a `NodeState`.
- `microceph.placement` enables `mon`, `mgr`, `mds` and `rgw` on a node
  through `service_placement_handler`, running the populate, hospitality,
  init, post-placement and database steps in order, in a background
  thread unless `wait` is set.

## What this package does not do

- It has no command-line program and no REST API server or client;
  everything is called from Python.
- `ServiceStore` keeps service records in memory only; there is no
  persistent or replicated cluster database.
- There is no cluster bootstrap or join procedure and no adding of OSDs
  end to end (recording disks, generating OSD keyrings and running
  `ceph-osd --mkfs`); the package supplies the individual steps.