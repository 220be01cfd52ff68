"""Cluster configuration keys managed through the ceph monitor KV store."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from microceph.runner import get_runner
from microceph.types import Config


@dataclass(frozen=True)
class ConfigTableEntry:
    """Ceph's <who> for a key and the daemons to restart when it changes."""

    who: str
    daemons: tuple[str, ...] = field(default_factory=tuple)


@dataclass
class ConfigDumpItem:
    """One entry of `ceph config dump` output."""

    section: str = ""
    name: str = ""
    value: str = ""


def get_const_config_table() -> dict[str, ConfigTableEntry]:
    """Return the table of supported configuration keys."""
    return {
        "cluster_network": ConfigTableEntry("global", ("osd",)),
        "osd_pool_default_crush_rule": ConfigTableEntry("global", ()),
    }


def get_config_table_service_set() -> set[str]:
    """Return the names of the ceph services known to MicroCeph."""
    return {"mon", "mgr", "osd", "mds", "rgw"}


def _who(key: str) -> str:
    entry = get_const_config_table().get(key)
    return entry.who if entry else ""


def set_config_item(config: Config) -> None:
    """Set a configuration key in the cluster."""
    get_runner().run_command(
        "ceph", "config", "set", _who(config.key), config.key, config.value, "-f", "json-pretty"
    )


def get_config_item(config: Config) -> list[Config]:
    """Fetch the value of one configuration key."""
    who = _who(config.key)
    # Global settings are queried through the mon entity.
    if who == "global":
        who = "mon"
    value = get_runner().run_command("ceph", "config", "get", who, config.key)
    return [Config(key=config.key, value=value)]


def remove_config_item(config: Config) -> None:
    """Remove a configuration key from the cluster."""
    get_runner().run_command("ceph", "config", "rm", _who(config.key), config.key)


def _dump_item(data: Mapping[str, Any]) -> ConfigDumpItem:
    lowered = {str(k).lower(): v for k, v in data.items()}

    def text(name: str) -> str:
        value = lowered.get(name)
        return "" if value is None else str(value)

    return ConfigDumpItem(section=text("section"), name=text("name"), value=text("value"))


def list_configs() -> list[Config]:
    """List the supported configuration keys that are set in the cluster."""
    output = get_runner().run_command("ceph", "config", "dump", "-f", "json-pretty")
    try:
        dump = json.loads(output)
    except ValueError:
        dump = []
    if not isinstance(dump, list):
        dump = []

    table = get_const_config_table()
    items = (_dump_item(entry) for entry in dump if isinstance(entry, dict))
    return [Config(key=item.name, value=item.value) for item in items if item.name in table]


def get_monitor_addresses(configs: Mapping[str, str]) -> list[str]:
    """Return the monitor addresses found among the configuration entries."""
    return [value for key, value in configs.items() if "mon.host." in key]