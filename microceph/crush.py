"""CRUSH rules for automatic failure domain handling."""

from __future__ import annotations

import json
from typing import Any

from microceph.config import get_config_item, set_config_item
from microceph.runner import CommandError, get_runner
from microceph.types import Config


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def add_crush_rule(name: str, failure_domain: str) -> None:
    """Create a replicated rule rooted at default with the given failure domain."""
    get_runner().run_command(
        "ceph", "osd", "crush", "rule", "create-replicated", name, "default", failure_domain
    )


def list_crush_rules() -> list[str]:
    """Return the names of the crush rules."""
    output = get_runner().run_command("ceph", "osd", "crush", "rule", "ls")
    return output.strip().split("\n")


def have_crush_rule(name: str) -> bool:
    """Return whether a crush rule with the given name exists."""
    try:
        return name in list_crush_rules()
    except CommandError:
        return False


def get_crush_rule_id(name: str) -> str:
    """Return the id of the named crush rule, as a string."""
    output = get_runner().run_command("ceph", "osd", "crush", "rule", "dump", name)
    dump = json.loads(output)
    if not isinstance(dump, dict) or "rule_id" not in dump:
        raise ValueError("rule_id not found in crush rule dump")
    return _format(dump["rule_id"])


def get_pools_for_domain(domain: str) -> list[str]:
    """Return the pools that use the automatic rule for a failure domain."""
    rule = f"microceph_auto_{domain}"
    if not have_crush_rule(rule):
        return []

    rule_id = get_crush_rule_id(rule)
    output = get_runner().run_command("ceph", "osd", "pool", "ls", "detail", "--format=json")
    try:
        pools = json.loads(output)
    except ValueError:
        return []
    if not isinstance(pools, list):
        return []
    return [
        _format(pool.get("pool_name", ""))
        for pool in pools
        if isinstance(pool, dict) and "crush_rule" in pool and _format(pool["crush_rule"]) == rule_id
    ]


def set_pool_crush_rule(pool: str, rule: str) -> None:
    """Set the crush rule of a pool."""
    get_runner().run_command("ceph", "osd", "pool", "set", pool, "crush_rule", rule)


def set_default_crush_rule(rule: str) -> None:
    """Make the named rule the default for new pools."""
    rule_id = get_crush_rule_id(rule)
    set_config_item(Config(key="osd_pool_default_crush_rule", value=rule_id))


def get_default_crush_rule() -> str:
    """Return the id of the default crush rule for new pools."""
    configs = get_config_item(Config(key="osd_pool_default_crush_rule"))
    return configs[0].value.strip()


def ensure_crush_rules() -> None:
    """Create the automatic osd and host level rules if they are missing."""
    for rule, domain in (("microceph_auto_osd", "osd"), ("microceph_auto_host", "host")):
        if have_crush_rule(rule):
            continue
        try:
            add_crush_rule(rule, domain)
        except CommandError as exc:
            raise RuntimeError(f"Failed to add microceph default crush rule: {exc}") from exc