"""Controlling snap services through snapctl."""

from __future__ import annotations

import logging

from microceph.runner import CommandError, get_runner

logger = logging.getLogger(__name__)


def is_intf_connected(name: str) -> bool:
    """Return whether the snapd interface is connected."""
    try:
        get_runner().run_command("snapctl", "is-connected", name)
    except CommandError as exc:
        logger.error("Failure: check is-connected %s: %s", name, exc)
        return False
    return True


def snap_start(service: str, enable: bool) -> None:
    """Start a service, optionally enabling it."""
    args = ["start", f"microceph.{service}"]
    if enable:
        args.append("--enable")
    get_runner().run_command("snapctl", *args)


def snap_stop(service: str, disable: bool) -> None:
    """Stop a service, optionally disabling it."""
    args = ["stop", f"microceph.{service}"]
    if disable:
        args.append("--disable")
    get_runner().run_command("snapctl", *args)


def snap_restart(service: str, is_reload: bool) -> None:
    """Restart a service, or reload it when is_reload is set."""
    args = ["restart"]
    if is_reload:
        args.append("--reload")
    args.append(f"microceph.{service}")
    get_runner().run_command("snapctl", *args)


def snap_check_active(service: str) -> None:
    """Raise unless the service is active."""
    out = get_runner().run_command("snapctl", "services", f"microceph.{service}")
    if "inactive" in out:
        raise RuntimeError(f"{service} service is not active")