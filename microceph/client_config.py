"""Client-side (rbd) configuration values applicable to a host."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Iterable

_CLIENT_CONFIG_FIELDS = {
    "rbd_cache": "is_cache",
    "rbd_cache_size": "cache_size",
    "rbd_cache_writethrough_until_flush": "is_cache_writethrough",
    "rbd_cache_max_dirty": "cache_max_dirty",
    "rbd_cache_target_dirty": "cache_target_dirty",
}


@dataclass
class ClientConfigT:
    """Client configuration values rendered into ceph.conf for a host."""

    is_cache: str = ""
    cache_size: str = ""
    is_cache_writethrough: str = ""
    cache_max_dirty: str = ""
    cache_target_dirty: str = ""


def get_client_config_set() -> dict[str, str]:
    """Map client config keys to ClientConfigT field names."""
    return dict(_CLIENT_CONFIG_FIELDS)


def client_config_from_items(items: Iterable[Any]) -> ClientConfigT:
    """Build a ClientConfigT from records that carry key and value attributes."""
    setters = get_client_config_set()
    field_names = {f.name for f in fields(ClientConfigT)}
    values: dict[str, str] = {}
    for item in items:
        name = setters.get(item.key)
        if name not in field_names:
            raise ValueError(f"failed object population: cannot set field for key {item.key!r}")
        values[name] = item.value
    return ClientConfigT(**values)


def get_client_config_for_host(query: Any, hostname: str) -> ClientConfigT:
    """Fetch every client configuration applicable to hostname."""
    try:
        items = query.get_all_for_host(hostname)
    except Exception as exc:
        raise RuntimeError(f"could not query database for client configs: {exc}") from exc
    return client_config_from_items(items)