"""Rendering of ceph.conf, keyrings and the RADOS gateway configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping

_NOTICE = "Generated by MicroCeph, DO NOT EDIT."
_INSECURE_RECLAIM = "auth allow insecure global id reclaim = false"

# (option name, data key) pairs, in the order they appear in the file.
_CEPH_GLOBAL = (
    ("run dir", "runDir"),
    ("fsid", "fsid"),
    ("mon host", "monitors"),
    ("public_network", "pubNet"),
)
_CEPH_BIND = (
    ("ms bind ipv4", "ipv4"),
    ("ms bind ipv6", "ipv6"),
)
_CEPH_CLIENT = (
    ("rbd_cache", "isCache"),
    ("rbd_cache_size", "cacheSize"),
    ("rbd_cache_writethrough_until_flush", "isCacheWritethrough"),
    ("rbd_cache_max_dirty", "cacheMaxDirty"),
    ("rbd_cache_target_dirty", "cacheTargetDirty"),
)


def _format(value: Any) -> str:
    if value is None:
        return "<no value>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _option(data: Mapping[str, Any], name: str, key: str) -> str:
    return f"{name} = {_format(data.get(key))}"


def _lines_to_text(lines: list[str]) -> str:
    return "\n".join(lines) + "\n"


def _render_ceph_conf(data: Mapping[str, Any]) -> str:
    lines = [f"# # {_NOTICE}", "[global]"]
    lines += [_option(data, name, key) for name, key in _CEPH_GLOBAL]
    lines.append(_INSECURE_RECLAIM)
    lines += [_option(data, name, key) for name, key in _CEPH_BIND]
    lines += ["", "[client]"]
    # Client options only appear when set; their line is kept blank otherwise.
    lines += [_option(data, name, key) if data.get(key) else "" for name, key in _CEPH_CLIENT]
    return _lines_to_text(lines)


def _render_keyring(data: Mapping[str, Any]) -> str:
    return _lines_to_text(
        [
            f"# {_NOTICE}",
            f"[{_format(data.get('name'))}]",
            "\t" + _option(data, "key", "key"),
        ]
    )


def _render_radosgw_conf(data: Mapping[str, Any]) -> str:
    return _lines_to_text(
        [
            f"# {_NOTICE}",
            "[global]",
            _option(data, "mon host", "monitors"),
            _option(data, "run dir", "runDir"),
            _INSECURE_RECLAIM,
            "",
            "[client.radosgw.gateway]",
            "rgw init timeout = 1200",
            f"rgw frontends = beast port={_format(data.get('rgwPort'))}",
        ]
    )


@dataclass
class ConfigWriter:
    """A rendered configuration file at a fixed location."""

    renderer: Callable[[Mapping[str, Any]], str]
    config_dir: str
    config_file: str

    @property
    def path(self) -> str:
        return os.path.join(self.config_dir, self.config_file)

    def render(self, data: Mapping[str, Any]) -> str:
        """Produce the file contents from the data bag."""
        return self.renderer(data)

    def write_config(self, data: Mapping[str, Any], mode: int) -> None:
        """Render the contents into the file, creating it with the given mode."""
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_TRUNC | os.O_RDWR, mode)
        except OSError as exc:
            raise OSError(f"Couldn't write {self.config_file}: {exc}") from exc
        with os.fdopen(fd, "w") as handle:
            handle.write(self.render(data))


def new_ceph_config(config_dir: str) -> ConfigWriter:
    """Writer for ceph.conf."""
    return ConfigWriter(_render_ceph_conf, config_dir, "ceph.conf")


def new_ceph_keyring(config_dir: str, config_file: str) -> ConfigWriter:
    """Writer for a Ceph keyring file."""
    return ConfigWriter(_render_keyring, config_dir, config_file)


def new_radosgw_config(config_dir: str) -> ConfigWriter:
    """Writer for radosgw.conf."""
    return ConfigWriter(_render_radosgw_conf, config_dir, "radosgw.conf")