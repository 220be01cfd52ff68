"""OSD lifecycle: failure domains, removal safety checks, purging and pool sizing."""

from __future__ import annotations

import errno
import json
import logging
import os
import shutil
import time
from typing import Any, Sequence

from microceph.crush import (
    get_crush_rule_id,
    get_default_crush_rule,
    get_pools_for_domain,
    set_default_crush_rule,
    set_pool_crush_rule,
)
from microceph.paths import get_path_const
from microceph.runner import CommandError, get_runner

logger = logging.getLogger(__name__)

_WIPE_TIMEOUT = 30.0
_PURGE_RETRIES = 10
_WIPE_RETRIES = 8
_SAFETY_RETRIES = 16


def _backoff(attempt: int) -> float:
    """Exponential delay in seconds: 100ms, 200ms, 400ms, ..."""
    return (2**attempt) * 0.1


def switch_failure_domain(old: str, new: str) -> None:
    """Move the default rule and every pool on the old domain's rule to the new domain."""
    new_rule = f"microceph_auto_{new}"
    logger.debug("Setting default crush rule to %s", new_rule)
    set_default_crush_rule(new_rule)

    pools = get_pools_for_domain(old)
    logger.debug("Found pools %s for domain %s", pools, old)
    for pool in pools:
        logger.debug("Setting pool %s crush rule to %s", pool, new_rule)
        set_pool_crush_rule(pool, new_rule)


def update_failure_domain(num_nodes: int) -> None:
    """Switch to host level failure domain once there are at least three nodes."""
    if num_nodes < 3:
        return
    try:
        switch_failure_domain("osd", "host")
    except (CommandError, ValueError) as exc:
        raise RuntimeError(f"failed to set host failure domain: {exc}") from exc


def is_downgrade_needed(num_nodes: int) -> bool:
    """Return whether the failure domain must drop from host to osd level.

    num_nodes is the number of nodes holding OSDs once the OSD is removed.
    """
    current_rule = get_default_crush_rule()
    host_rule = get_crush_rule_id("microceph_auto_host")
    if current_rule != host_rule:
        # Either at osd level already or a custom rule is in use.
        logger.info("No need to downgrade auto failure domain, current rule is %s", current_rule)
        return False
    logger.info("Number of nodes after removal: %s", num_nodes)
    return num_nodes < 3


def have_osd_in_ceph(osd: int) -> bool:
    """Return whether the OSD appears in the cluster's OSD tree."""
    try:
        output = get_runner().run_command("ceph", "osd", "tree", "-f", "json")
    except CommandError as exc:
        logger.error("Failed to get ceph osd tree: %s", exc)
        raise RuntimeError(f"failed to get ceph osd tree: {exc}") from exc
    try:
        tree: Any = json.loads(output)
    except ValueError as exc:
        logger.error("Failed to parse ceph osd tree: %s", exc)
        raise RuntimeError(f"failed to parse ceph osd tree: {exc}") from exc

    nodes = tree.get("nodes") if isinstance(tree, dict) else None
    if not isinstance(nodes, list):
        return False
    return any(
        isinstance(node, dict) and node.get("type") == "osd" and node.get("id") == osd
        for node in nodes
    )


def reweight_osd(osd: int, weight: float) -> None:
    """Set the crush weight of an OSD; failure is only logged."""
    logger.debug("Reweighting osd.%d to %f", osd, weight)
    try:
        get_runner().run_command(
            "ceph", "osd", "crush", "reweight", f"osd.{osd}", f"{weight:f}"
        )
    except CommandError as exc:
        logger.warning("Failed to reweight osd.%d: %s", osd, exc)


def purge_osd(osd: int) -> None:
    """Purge an OSD from the cluster, retrying while ceph reports it busy."""
    error: CommandError | None = None
    for attempt in range(_PURGE_RETRIES):
        try:
            get_runner().run_command(
                "ceph", "osd", "purge", f"osd.{osd}", "--yes-i-really-mean-it"
            )
        except CommandError as exc:
            error = exc
        else:
            error = None
            break

        if error.exit_code is None:
            logger.warning("Purge failed with non-exit error: %s", error)
            break
        if error.exit_code != errno.EBUSY:
            logger.warning("Purge failed with unexpected exit error: %s", error)
            break
        delay = _backoff(attempt)
        logger.info("Purge failed %s, retrying in %ss", error, delay)
        time.sleep(delay)

    if error is not None:
        logger.error("Failed to purge osd.%d: %s", osd, error)
        raise RuntimeError(f"failed to purge osd.{osd}: {error}") from error
    logger.info("osd.%d purged", osd)


def _wait_for(check: str, osd: int, label: str) -> None:
    for attempt in range(_SAFETY_RETRIES):
        try:
            get_runner().run_command("ceph", "osd", check, f"osd.{osd}")
        except CommandError:
            delay = _backoff(attempt)
            logger.info("osd.%d not %s, retrying in %ss", osd, label, delay)
            time.sleep(delay)
            continue
        logger.info("osd.%d %s", osd, label)
        return
    logger.error("osd.%d failed to reach %s", osd, check)
    raise RuntimeError(f"osd.{osd} failed to reach {check}")


def safety_check_stop(osd: int) -> None:
    """Wait until ceph reports the OSD ok to stop."""
    _wait_for("ok-to-stop", osd, "ok to stop")


def safety_check_destroy(osd: int) -> None:
    """Wait until ceph reports the OSD safe to destroy."""
    _wait_for("safe-to-destroy", osd, "safe to destroy")


def out_down_osd(osd: int) -> None:
    """Mark the OSD out, then down."""
    for state in ("out", "down"):
        try:
            get_runner().run_command("ceph", "osd", state, f"osd.{osd}")
        except CommandError as exc:
            logger.error("Failed to take osd.%d %s: %s", osd, state, exc)
            raise RuntimeError(f"failed to take osd.{osd} {state}: {exc}") from exc


def kill_osd(osd: int) -> None:
    """Terminate the ceph-osd process of the given OSD id."""
    try:
        get_runner().run_command("pkill", "-f", f"ceph-osd .* --id {osd}$")
    except CommandError as exc:
        logger.error("Failed to kill osd.%d: %s", osd, exc)
        raise RuntimeError(f"failed to kill osd.{osd}: {exc}") from exc


def remove_osd_config(osd: int) -> None:
    """Remove the OSD's data directory."""
    osd_data_path = os.path.join(get_path_const().data_path, "osd", f"ceph-{osd}")
    try:
        shutil.rmtree(osd_data_path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Failed to remove osd.%d config: %s", osd, exc)
        raise RuntimeError(f"failed to remove osd.{osd} config: {exc}") from exc


def check_min_osds(disks: Sequence[Any], osd: int) -> None:
    """Refuse removal unless more than three OSDs are configured."""
    if len(disks) <= 3:
        raise ValueError(
            f"cannot remove osd.{osd} we need at least 3 OSDs, have {len(disks)}"
        )


def timeout_wipe(path: str) -> None:
    """Zero the start of a device, giving up after thirty seconds."""
    get_runner().run_command_context(
        _WIPE_TIMEOUT,
        "dd", "if=/dev/zero", f"of={path}", "bs=4M", "count=10", "status=none",
    )


def wipe_device(path: str) -> None:
    """Wipe a device with retries; a persistent failure is only logged."""
    error: CommandError | None = None
    for attempt in range(_WIPE_RETRIES):
        try:
            timeout_wipe(path)
        except CommandError as exc:
            error = exc
            delay = _backoff(attempt)
            logger.info("Wipe failed %s, retrying in %ss", exc, delay)
            time.sleep(delay)
            continue
        error = None
        break
    if error is not None:
        # A broken device must not prevent its removal from the cluster.
        logger.warning("Fault during device wipe: %s", error)


def set_replication_factor(pools: Sequence[str], size: int) -> None:
    """Set the default pool size and apply it to the given pools ("*" for all)."""
    runner = get_runner()
    ssize = str(size)
    try:
        runner.run_command("ceph", "config", "set", "global", "osd_pool_default_size", ssize)
    except CommandError as exc:
        raise RuntimeError(f"failed to set pool size default: {exc}") from exc

    allow_size_one = "true" if size == 1 else "false"
    try:
        runner.run_command(
            "ceph", "config", "set", "global", "mon_allow_pool_size_one", allow_size_one
        )
    except CommandError as exc:
        raise RuntimeError(f"failed to set size one pool config option: {exc}") from exc

    # Only silences a warning, so failure is ignored.
    try:
        runner.run_command("ceph", "health", "mute", "POOL_NO_REDUNDANCY")
    except CommandError:
        pass

    targets = list(pools)
    if targets == ["*"]:
        try:
            output = runner.run_command("ceph", "osd", "pool", "ls")
        except CommandError as exc:
            raise RuntimeError(f"failed to list pools: {exc}") from exc
        targets = output.split("\n")

    for pool in (p.strip() for p in targets):
        if not pool:
            continue
        try:
            runner.run_command(
                "ceph", "osd", "pool", "set", pool, "size", ssize, "--yes-i-really-mean-it"
            )
        except CommandError as exc:
            raise RuntimeError(f"failed to set pool size for {pool}: {exc}") from exc