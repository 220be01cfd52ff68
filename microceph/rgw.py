"""The RADOS gateway service and per-node service records."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass

from microceph.configwriter import new_radosgw_config
from microceph.keyring import gen_auth, remove_mon
from microceph.paths import get_path_const
from microceph.runner import CommandError
from microceph.services import clean_service
from microceph.snap import snap_start, snap_stop
from microceph.types import Service

logger = logging.getLogger(__name__)

_RGW_KEYRING_LINK = "ceph.client.radosgw.gateway.keyring"


class ServiceStore:
    """Records of which service runs on which cluster member."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], int] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create_service(self, member: str, service: str) -> int:
        """Record a service on a member and return the record id."""
        with self._lock:
            key = (member, service)
            if key in self._records:
                raise ValueError(f'service "{service}" already recorded for member "{member}"')
            record_id = self._next_id
            self._records[key] = record_id
            self._next_id += 1
            return record_id

    def delete_service(self, member: str, service: str) -> None:
        """Remove the record of a service on a member."""
        with self._lock:
            if self._records.pop((member, service), None) is None:
                raise LookupError(f'service "{service}" not found for member "{member}"')

    def get_services(self, service: str | None = None) -> list[Service]:
        """Return the recorded services, optionally only those of one name."""
        with self._lock:
            ordered = sorted(self._records.items(), key=lambda item: item[1])
        return [
            Service(service=name, location=member)
            for (member, name), _ in ordered
            if service is None or name == service
        ]


@dataclass
class NodeState:
    """The local cluster member: its name, address and service records."""

    name: str
    address: str = ""
    database: ServiceStore | None = None


def _require_database(state: NodeState) -> ServiceStore:
    if state.database is None:
        raise RuntimeError("no database")
    return state.database


def _rgw_data_path() -> str:
    return os.path.join(get_path_const().data_path, "radosgw", "ceph-radosgw.gateway")


def create_rgw_keyring(path: str) -> None:
    """Create the gateway keyring in path unless it already exists."""
    os.makedirs(path, 0o770, exist_ok=True)
    keyring_path = os.path.join(path, "keyring")
    if os.path.exists(keyring_path):
        return
    gen_auth(keyring_path, "client.radosgw.gateway", ("mon", "allow rw"), ("osd", "allow rwx"))


def symlink_rgw_keyring(key_path: str, conf_path: str) -> None:
    """Link the gateway keyring into the configuration directory."""
    try:
        os.symlink(os.path.join(key_path, "keyring"), os.path.join(conf_path, _RGW_KEYRING_LINK))
    except OSError as exc:
        raise RuntimeError(f"Failed to create symlink to RGW keyring: {exc}") from exc


def enable_rgw(state: NodeState, port: int) -> None:
    """Configure, record and start the RADOS gateway on the given port."""
    paths = get_path_const()
    conf = new_radosgw_config(paths.conf_path)
    conf.write_config(
        {"runDir": paths.run_path, "monitors": state.address, "rgwPort": port},
        0o644,
    )

    path = _rgw_data_path()
    create_rgw_keyring(path)
    symlink_rgw_keyring(path, paths.conf_path)

    database = _require_database(state)
    try:
        database.create_service(state.name, "rgw")
    except (ValueError, LookupError) as exc:
        raise RuntimeError(f"Failed to record role: {exc}") from exc

    try:
        snap_start("rgw", True)
    except CommandError as exc:
        raise RuntimeError(f"Failed to start RGW service: {exc}") from exc


def disable_rgw(state: NodeState) -> None:
    """Stop the RADOS gateway and remove its record, keyring and configuration."""
    paths = get_path_const()
    try:
        snap_stop("rgw", True)
    except CommandError as exc:
        raise RuntimeError(f"Failed to stop RGW service: {exc}") from exc

    remove_service_database(state, "rgw")

    removals = (
        (os.path.join(paths.conf_path, _RGW_KEYRING_LINK), "failed to remove RGW keyring symlink"),
        (os.path.join(_rgw_data_path(), "keyring"), "failed to remove RGW keyring"),
        (os.path.join(paths.conf_path, "radosgw.conf"), "failed to remove RGW configuration"),
    )
    for path, message in removals:
        try:
            os.remove(path)
        except OSError as exc:
            raise RuntimeError(f"{message}: {exc}") from exc


def remove_service_database(state: NodeState, service: str) -> None:
    """Remove the record of a service on this node."""
    database = _require_database(state)
    try:
        database.delete_service(state.name, service)
    except LookupError as exc:
        logger.error('failed to remove service from db "%s": %s', service, exc)
        raise RuntimeError(f'failed to remove service from db "{service}": {exc}') from exc


def delete_service(state: NodeState, service: str) -> None:
    """Stop a service on this node and remove its data and record."""
    try:
        snap_stop(service, True)
    except CommandError as exc:
        logger.error('failed to stop daemon "%s": %s', service, exc)
        raise RuntimeError(f'failed to stop daemon "{service}": {exc}') from exc

    if service == "mon":
        remove_mon(state.name)

    try:
        clean_service(state.name, service)
    except RuntimeError as exc:
        raise RuntimeError(f'failed to clean service "{service}": {exc}') from exc

    try:
        remove_service_database(state, service)
    except RuntimeError as exc:
        raise RuntimeError(f'failed to remove service "{service}" from database: {exc}') from exc