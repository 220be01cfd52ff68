"""Placing ceph services on a cluster member."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from microceph.keyring import join_mds, join_mgr, join_mon
from microceph.paths import get_path_const
from microceph.rgw import NodeState, enable_rgw
from microceph.runner import CommandError
from microceph.snap import snap_check_active, snap_start
from microceph.types import EnableService

logger = logging.getLogger(__name__)


def get_add_service_table() -> dict[str, Callable[[str, str], None]]:
    """Map service names to the functions that set them up on a host."""
    return {"mon": join_mon, "mgr": join_mgr, "mds": join_mds}


def generic_hospitality_check(service: str) -> None:
    """Raise if the service is already active on this host."""
    try:
        snap_check_active(service)
    except (CommandError, RuntimeError):
        return
    message = f"{service} service already active on host"
    logger.error(message)
    raise RuntimeError(message)


def generic_service_init(state: NodeState, name: str) -> None:
    """Create the service data directory, set the service up and start it."""
    hostname = state.name
    service_data_path = os.path.join(get_path_const().data_path, name, f"ceph-{hostname}")

    add_service = get_add_service_table().get(name)
    if add_service is None:
        message = f"{name} is not registered in the generic implementation"
        logger.error(message)
        raise ValueError(message)

    try:
        os.makedirs(service_data_path, 0o700, exist_ok=True)
    except OSError as exc:
        logger.error("%s", exc)
        raise RuntimeError(
            f"failed to add datapath {service_data_path} for service {name}: {exc}"
        ) from exc

    try:
        add_service(hostname, service_data_path)
    except Exception as exc:
        logger.error("%s", exc)
        raise RuntimeError(f"failed to add service {name}: {exc}") from exc

    try:
        snap_start(name, True)
    except CommandError as exc:
        logger.error("%s", exc)
        raise RuntimeError(f"failed to perform snap start for service {name}: {exc}") from exc


def generic_post_placement_check(service: str) -> None:
    """Check repeatedly that the service stays active."""
    for attempts in range(4, 0, -1):
        snap_check_active(service)
        time.sleep(attempts)


def generic_db_update(state: NodeState, service: str) -> None:
    """Record the service on this node."""
    if state.database is None:
        raise RuntimeError("no database")
    try:
        state.database.create_service(state.name, service)
    except (ValueError, LookupError) as exc:
        raise RuntimeError(f"failed to record role: {exc}") from exc


@dataclass
class GenericServicePlacement:
    """Placement of mon, mgr and mds services."""

    name: str

    def populate_params(self, state: NodeState, payload: str) -> None:
        """Generic services take no parameters."""

    def hospitality_check(self, state: NodeState) -> None:
        generic_hospitality_check(self.name)

    def service_init(self, state: NodeState) -> None:
        generic_service_init(state, self.name)

    def post_placement_check(self, state: NodeState) -> None:
        generic_post_placement_check(self.name)

    def db_update(self, state: NodeState) -> None:
        generic_db_update(state, self.name)


@dataclass
class RgwServicePlacement:
    """Placement of the RADOS gateway, configured with a port."""

    port: int = 0

    def populate_params(self, state: NodeState, payload: str) -> None:
        """Read the port from a JSON object payload."""
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError(f"cannot read RGW parameters from {payload!r}")
        for key, value in data.items():
            if str(key).lower() == "port":
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"invalid RGW port {value!r}")
                self.port = value

    def hospitality_check(self, state: NodeState) -> None:
        generic_hospitality_check("rgw")

    def service_init(self, state: NodeState) -> None:
        enable_rgw(state, self.port)

    def post_placement_check(self, state: NodeState) -> None:
        generic_post_placement_check("rgw")

    def db_update(self, state: NodeState) -> None:
        generic_db_update(state, "rgw")


def get_service_placement_table() -> dict[str, Any]:
    """Map service names to fresh placement handlers."""
    return {
        "mon": GenericServicePlacement("mon"),
        "mgr": GenericServicePlacement("mgr"),
        "mds": GenericServicePlacement("mds"),
        "rgw": RgwServicePlacement(),
    }


def enable_service(state: Any, payload: EnableService, item: Any) -> None:
    """Run every placement step for a service, stopping at the first failure."""
    steps = (
        (lambda: item.populate_params(state, payload.payload),
         f"failed to populate the payload for {payload.name} enablement"),
        (lambda: item.hospitality_check(state),
         f"host failed hospitality check for {payload.name} enablement"),
        (lambda: item.service_init(state),
         f"failed to initialise {payload.name} service at host"),
        (lambda: item.post_placement_check(state),
         f"{payload.name} service unable to sustain on host"),
        (lambda: item.db_update(state),
         f"failed to add DB record for {payload.name}"),
    )
    for step, message in steps:
        try:
            step()
        except Exception as exc:
            error = RuntimeError(f"{message}: {exc}")
            logger.error("%s", error)
            raise error from exc


def service_placement_handler(state: Any, payload: EnableService) -> None:
    """Enable the requested service, in the background unless payload.wait is set."""
    logger.debug("Enabling %s service, payload: %s", payload.name, payload.payload)
    item = get_service_placement_table().get(payload.name)
    if item is None:
        message = f"{payload.name} enablement is not supported"
        logger.error(message)
        raise ValueError(message)

    if payload.wait:
        try:
            enable_service(state, payload, item)
        except RuntimeError as exc:
            logger.error("failed %s service enablement request: %s", payload.name, exc)
            raise
        return

    def _background() -> None:
        try:
            enable_service(state, payload, item)
        except RuntimeError as exc:
            logger.error("failed %s service enablement request: %s", payload.name, exc)

    threading.Thread(target=_background, daemon=True).start()