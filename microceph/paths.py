"""Filesystem locations used by the snap."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class PathConst:
    """Configuration, runtime, data and log directories."""

    conf_path: str
    run_path: str
    data_path: str
    log_path: str


def get_path_const() -> PathConst:
    """Derive the directories from SNAP_DATA and SNAP_COMMON."""
    snap_data = os.environ.get("SNAP_DATA", "")
    snap_common = os.environ.get("SNAP_COMMON", "")
    return PathConst(
        conf_path=os.path.join(snap_data, "conf"),
        run_path=os.path.join(snap_data, "run"),
        data_path=os.path.join(snap_common, "data"),
        log_path=os.path.join(snap_common, "logs"),
    )