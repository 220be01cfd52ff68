"""Keyrings, monitor maps and daemon credentials."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Sequence

from microceph.runner import CommandError, ceph_run, get_runner


def _capability_args(caps: Sequence[Sequence[str]], flag: str | None) -> list[str]:
    args: list[str] = []
    for capability in caps:
        if len(capability) != 2:
            raise ValueError(f"Invalid keyring capability: [{' '.join(capability)}]")
        if flag:
            args.append(flag)
        args.extend(capability)
    return args


def gen_keyring(path: str, name: str, *caps: Sequence[str]) -> None:
    """Create a keyring file with a fresh key and the given (entity, caps) pairs."""
    args = ["--create-keyring", path, "--gen-key", "-n", name]
    args += _capability_args(caps, "--cap")
    get_runner().run_command("ceph-authtool", *args)


def import_keyring(path: str, source: str) -> None:
    """Import the keys of source into the keyring at path."""
    get_runner().run_command("ceph-authtool", path, "--import-keyring", source)


def gen_auth(path: str, name: str, *caps: Sequence[str]) -> None:
    """Get or create an auth entity in the cluster and write its keyring to path."""
    args = ["auth", "get-or-create", name]
    args += _capability_args(caps, None)
    args += ["-o", path]
    ceph_run(*args)


def parse_keyring(path: str) -> str:
    """Return the secret of the first key entry in a keyring file."""
    try:
        text = Path(path).read_text()
    except OSError as exc:
        raise OSError(f'Failed to open "{path}": {exc}') from exc

    secret = ""
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("key"):
            continue
        _, sep, value = line.partition("=")
        if not sep:
            continue
        secret = value.strip()
        break

    if not secret:
        raise ValueError("Couldn't find a keyring entry")
    return secret


def bootstrap_mgr(hostname: str, path: str) -> None:
    """Create the manager keyring for hostname in path."""
    ceph_run(
        "auth", "get-or-create", f"mgr.{hostname}",
        "mon", "allow profile mgr",
        "osd", "allow *",
        "mds", "allow *",
        "-o", os.path.join(path, "keyring"),
    )


def join_mgr(hostname: str, path: str) -> None:
    bootstrap_mgr(hostname, path)


def bootstrap_mds(hostname: str, path: str) -> None:
    """Create the metadata server keyring for hostname in path."""
    ceph_run(
        "auth", "get-or-create", f"mds.{hostname}",
        "mon", "allow profile mds",
        "mgr", "allow profile mds",
        "mds", "allow *",
        "osd", "allow *",
        "-o", os.path.join(path, "keyring"),
    )


def join_mds(hostname: str, path: str) -> None:
    bootstrap_mds(hostname, path)


def gen_monmap(path: str, fsid: str) -> None:
    """Create a new monitor map for the cluster fsid."""
    get_runner().run_command("monmaptool", "--create", "--fsid", fsid, path)


def add_monmap(path: str, name: str, address: str) -> None:
    """Add a monitor to the monitor map."""
    get_runner().run_command("monmaptool", "--add", name, address, path)


def bootstrap_mon(hostname: str, path: str, monmap: str, keyring: str) -> None:
    """Initialise a monitor data directory."""
    get_runner().run_command(
        "ceph-mon",
        "--mkfs",
        "-i", hostname,
        "--mon-data", path,
        "--monmap", monmap,
        "--keyring", keyring,
    )


def join_mon(hostname: str, path: str) -> None:
    """Fetch the current monitor map and keyring, then initialise a monitor."""
    with tempfile.TemporaryDirectory() as tmp:
        monmap = os.path.join(tmp, "mon.map")
        try:
            ceph_run("mon", "getmap", "-o", monmap)
        except CommandError as exc:
            raise RuntimeError(f"failed to retrieve monmap: {exc}") from exc

        keyring = os.path.join(tmp, "mon.keyring")
        try:
            ceph_run("auth", "get", "mon.", "-o", keyring)
        except CommandError as exc:
            raise RuntimeError(f"failed to retrieve mon keyring: {exc}") from exc

        bootstrap_mon(hostname, path, monmap, keyring)


def remove_mon(hostname: str) -> None:
    """Remove a monitor from the cluster."""
    try:
        ceph_run("mon", "rm", hostname)
    except CommandError as exc:
        raise RuntimeError(f'failed to remove monitor "{hostname}": {exc}') from exc