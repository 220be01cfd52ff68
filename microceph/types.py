"""Request and response payloads exchanged with the MicroCeph API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


def _get(data: Mapping[str, Any], key: str, default: Any) -> Any:
    """Fetch a key, treating an explicit null like a missing key."""
    value = data.get(key)
    return default if value is None else value


@dataclass
class ClientConfig:
    """Parameters of a client configuration request."""

    key: str = ""
    value: str = ""
    host: str = ""
    wait: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value, "host": self.host, "wait": self.wait}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ClientConfig":
        return cls(
            key=_get(data, "key", ""),
            value=_get(data, "value", ""),
            host=_get(data, "host", ""),
            wait=bool(_get(data, "wait", False)),
        )


@dataclass
class Config:
    """A cluster configuration key/value pair."""

    key: str = ""
    value: str = ""
    wait: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value, "wait": self.wait}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        return cls(
            key=_get(data, "key", ""),
            value=_get(data, "value", ""),
            wait=bool(_get(data, "wait", False)),
        )


@dataclass
class DisksPost:
    """A request to add one or more disks, with optional WAL and DB devices."""

    path: list[str] = field(default_factory=list)
    wipe: bool = False
    encrypt: bool = False
    wal_dev: str | None = None
    wal_wipe: bool = False
    wal_encrypt: bool = False
    db_dev: str | None = None
    db_wipe: bool = False
    db_encrypt: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "wipe": self.wipe,
            "encrypt": self.encrypt,
            "waldev": self.wal_dev,
            "walwipe": self.wal_wipe,
            "walencrypt": self.wal_encrypt,
            "dbdev": self.db_dev,
            "dbwipe": self.db_wipe,
            "dbencrypt": self.db_encrypt,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DisksPost":
        return cls(
            path=list(_get(data, "path", [])),
            wipe=bool(_get(data, "wipe", False)),
            encrypt=bool(_get(data, "encrypt", False)),
            wal_dev=data.get("waldev"),
            wal_wipe=bool(_get(data, "walwipe", False)),
            wal_encrypt=bool(_get(data, "walencrypt", False)),
            db_dev=data.get("dbdev"),
            db_wipe=bool(_get(data, "dbwipe", False)),
            db_encrypt=bool(_get(data, "dbencrypt", False)),
        )


@dataclass
class DiskAddReport:
    """Outcome of adding a single disk."""

    path: str = ""
    report: str = ""
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "report": self.report, "error": self.error}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiskAddReport":
        return cls(
            path=_get(data, "path", ""),
            report=_get(data, "report", ""),
            error=_get(data, "error", ""),
        )


@dataclass
class DiskAddResponse:
    """Response to a disk addition request."""

    validation_error: str = ""
    reports: list[DiskAddReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "validation_error": self.validation_error,
            "report": [report.to_dict() for report in self.reports],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiskAddResponse":
        return cls(
            validation_error=_get(data, "validation_error", ""),
            reports=[DiskAddReport.from_dict(item) for item in _get(data, "report", [])],
        )


@dataclass
class DisksDelete:
    """A request to remove an OSD."""

    osd: int = 0
    bypass_safety: bool = False
    confirm_downgrade: bool = False
    timeout: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "osdid": self.osd,
            "bypass_safety": self.bypass_safety,
            "confirm_downgrade": self.confirm_downgrade,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DisksDelete":
        return cls(
            osd=int(_get(data, "osdid", 0)),
            bypass_safety=bool(_get(data, "bypass_safety", False)),
            confirm_downgrade=bool(_get(data, "confirm_downgrade", False)),
            timeout=int(_get(data, "timeout", 0)),
        )


@dataclass
class Disk:
    """A configured OSD disk: its number, path and the member holding it."""

    osd: int = 0
    path: str = ""
    location: str = ""


@dataclass
class DiskParameter:
    """A device to turn into an OSD, or a loop file size in MB."""

    path: str = ""
    encrypt: bool = False
    wipe: bool = False
    loop_size: int = 0


@dataclass
class PoolPut:
    """A request to change the replication factor of pools."""

    pools: list[str] = field(default_factory=list)
    size: int = 0


@dataclass
class Service:
    """A service and the member it runs on."""

    service: str = ""
    location: str = ""


@dataclass
class EnableService:
    """A request to enable a service; payload is service-specific JSON."""

    name: str = ""
    wait: bool = False
    payload: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "bool": self.wait, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnableService":
        return cls(
            name=_get(data, "name", ""),
            wait=bool(_get(data, "bool", False)),
            payload=_get(data, "payload", ""),
        )


@dataclass
class RGWService(Service):
    """An RGW service with its port and enablement flag."""

    port: int = 0
    enabled: bool = False