"""Restarting ceph daemons and cleaning up service data."""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from typing import Any, Callable

from microceph.paths import get_path_const
from microceph.runner import CommandError, get_runner
from microceph.snap import snap_restart

logger = logging.getLogger(__name__)

_RETRY_LIMIT = 10
_RETRY_STEP = 10.0


def _load(output: str) -> Any:
    try:
        return json.loads(output)
    except ValueError:
        return None


def get_mons() -> set[str]:
    """Return the names of the monitors in the monitor map."""
    try:
        output = get_runner().run_command("ceph", "mon", "dump", "-f", "json-pretty")
    except CommandError as exc:
        logger.error("Failed fetching Mon dump: %s", exc)
        raise
    logger.debug("Mon Dump:\n%s", output)
    data = _load(output)
    mons = data.get("mons") if isinstance(data, dict) else None
    if not isinstance(mons, list):
        return set()
    return {str(mon["name"]) for mon in mons if isinstance(mon, dict) and "name" in mon}


def get_up_osds() -> set[str]:
    """Return the uuids of the OSDs that are up."""
    try:
        output = get_runner().run_command("ceph", "osd", "dump", "-f", "json-pretty")
    except CommandError as exc:
        logger.error("Failed fetching OSD dump: %s", exc)
        raise
    logger.debug("OSD Dump:\n%s", output)
    data = _load(output)
    osds = data.get("osds") if isinstance(data, dict) else None
    if not isinstance(osds, list):
        return set()
    return {
        str(osd["uuid"])
        for osd in osds
        if isinstance(osd, dict) and osd.get("up") == 1 and "uuid" in osd
    }


_SERVICE_WORKERS: dict[str, Callable[[], set[str]]] = {
    "osd": get_up_osds,
    "mon": get_mons,
}


def restart_ceph_service(service: str) -> None:
    """Restart a ceph service on this host and wait for its daemons to return."""
    fetch = _SERVICE_WORKERS.get(service)
    if fetch is None:
        message = f"No handler defined for service {service}"
        logger.error(message)
        raise ValueError(message)

    try:
        workers = fetch()
    except CommandError:
        logger.error("Failed fetching service %s workers", service)
        raise

    try:
        snap_restart(service, False)
    except CommandError as exc:
        logger.warning("Restart of %s reported: %s", service, exc)

    error: Exception | None = None
    for attempt in range(_RETRY_LIMIT):
        if attempt:
            time.sleep(_RETRY_STEP * attempt)
        try:
            current = fetch()
        except CommandError as exc:
            error = exc
            continue
        if workers <= current:
            return
        error = RuntimeError(
            f"Attempt {attempt}: Workers: {sorted(workers)} not all present in {sorted(current)}"
        )
        logger.error("%s", error)

    assert error is not None
    raise error


def restart_ceph_services(services: list[str]) -> None:
    """Restart the given services in order, stopping at the first failure."""
    for service in services:
        try:
            restart_ceph_service(service)
        except Exception as exc:
            logger.error("Service %s restart failed: %s", service, exc)
            raise


def clean_service(hostname: str, service: str) -> None:
    """Remove the data directory of a service on this host."""
    data_path = os.path.join(get_path_const().data_path, service, f"ceph-{hostname}")
    try:
        shutil.rmtree(data_path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error('failed to remove service "%s" data: %s', service, exc)
        raise RuntimeError(f'failed to remove service "{service}" data: {exc}') from exc