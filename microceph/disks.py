"""Preparing block devices and loop files for use as OSDs."""

from __future__ import annotations

import base64
import logging
import os
import re
import secrets
import subprocess
from typing import Sequence

from microceph.osd import timeout_wipe
from microceph.runner import CommandError, get_runner
from microceph.snap import is_intf_connected
from microceph.types import DiskAddReport, DiskAddResponse, DiskParameter

logger = logging.getLogger(__name__)

_LOOP_SPEC_ID = "loop,"
_BACKING_SPEC = re.compile(r"loop,([1-9][0-9]*[MGT]),([1-9][0-9]*)")
_UNIT_FACTORS = {"M": 1, "G": 1024, "T": 1024 * 1024}


def parse_backing_spec(spec: str) -> tuple[int, int]:
    """Parse "loop,<size><unit>,<number>" into (size in MB, number of files)."""
    match = _BACKING_SPEC.search(spec)
    if match is None:
        raise ValueError(f"illegal spec: {spec}")
    size_text = match.group(1)
    size = int(size_text[:-1]) * _UNIT_FACTORS[size_text[-1].upper()]
    return size, int(match.group(2))


def get_free_space(path: str) -> int:
    """Return the megabytes available to unprivileged users on path's filesystem."""
    stat = os.statvfs(path)
    return stat.f_bavail * stat.f_frsize // 1024 // 1024


def create_backing_file(directory: str, size: int) -> str:
    """Create a sparse backing file of size MB in directory and return its path."""
    backing = os.path.join(directory, "osd-backing.img")
    try:
        get_runner().run_command("truncate", "-s", f"{size}M", backing)
    except CommandError as exc:
        raise RuntimeError(f"failed to create backing file {backing}: {exc}") from exc
    return backing


def create_key() -> bytes:
    """Create a 128 byte base64 key for use with LUKS."""
    return base64.b64encode(secrets.token_bytes(96))


def _cryptsetup(args: Sequence[str], key: bytes) -> tuple[int, str]:
    try:
        result = subprocess.run(
            ["cryptsetup", *args],
            input=key,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        return -1, str(exc)
    output = result.stdout.decode(errors="replace") if result.stdout else ""
    return result.returncode, output


def encrypt_device(path: str, key: bytes) -> None:
    """Format the device as a LUKS volume, reading the key from stdin."""
    code, out = _cryptsetup(["--batch-mode", "--key-file", "-", "luksFormat", path], key)
    if code != 0:
        raise RuntimeError(f"failed to luksFormat device: {path}, exit status {code}, {out}")


def store_key(key: bytes, osd_id: int, suffix: str) -> None:
    """Store the key in the ceph key/value store under a name derived from the OSD."""
    try:
        get_runner().run_command(
            "ceph", "config-key", "set", f"microceph:osd{suffix}.{osd_id}/key", key.decode()
        )
    except CommandError as exc:
        raise RuntimeError(f"failed to store key: {exc}") from exc


def open_encrypted_device(path: str, osd_id: int, key: bytes, suffix: str) -> str:
    """Open the LUKS volume and return the path of its mapped device."""
    mapped = f"luksosd{suffix}-{osd_id}"
    code, out = _cryptsetup(
        ["--keyfile-size", "128", "--key-file", "-", "luksOpen", path, mapped], key
    )
    if code != 0:
        raise RuntimeError(
            f"failed to luksOpen: {path}, exit status {code}, {out}\n\n"
            "NOTE: OSD Encryption requires a snapd >= 2.59.1\n"
            'Verify your version of snapd by running "snap version"\n'
        )
    return f"/dev/mapper/{mapped}"


def check_encrypt_support() -> None:
    """Raise unless this machine can set up encrypted OSDs."""
    try:
        os.stat("/dev/mapper/control")
    except OSError as exc:
        raise RuntimeError(f"missing /dev/mapper/control: {exc}") from exc

    if not is_intf_connected("dm-crypt"):
        helper = (
            'use "sudo snap connect microceph:dm-crypt ; sudo snap restart microceph.daemon"'
            " to enable encryption."
        )
        raise RuntimeError(f"dm-crypt interface connection missing: \n{helper}")

    if not os.path.isdir("/sys/module/dm_crypt"):
        raise RuntimeError("missing dm_crypt module")

    try:
        os.listdir("/run")
    except OSError as exc:
        raise RuntimeError(
            f"can't access /run, might need to update snapd to >=2.59.1: {exc}"
        ) from exc


def setup_encrypted_osd(device_path: str, osd_data_path: str, osd_id: int, suffix: str) -> str:
    """Encrypt the device for an OSD and return the path of the opened volume."""
    try:
        os.symlink(device_path, os.path.join(osd_data_path, "unencrypted" + suffix))
    except OSError as exc:
        raise RuntimeError(f"failed to add unencrypted block symlink: {exc}") from exc

    key = create_key()
    try:
        store_key(key, osd_id, suffix)
    except RuntimeError as exc:
        raise RuntimeError(f"key store error: {exc}") from exc
    try:
        encrypt_device(device_path, key)
    except RuntimeError as exc:
        raise RuntimeError(f"failed to encrypt: {exc}") from exc
    try:
        return open_encrypted_device(device_path, osd_id, key, suffix)
    except RuntimeError as exc:
        raise RuntimeError(f"failed to open: {exc}") from exc


def prepare_disk(disk: DiskParameter, suffix: str, osd_path: str, osd_id: int) -> str:
    """Wipe and/or encrypt a device as requested and return the path to use.

    disk.path is updated to the encrypted volume when encryption is set up.
    Only the data device (empty suffix) is linked as the OSD's block device;
    WAL and DB devices are handled by ceph itself.
    """
    if disk.wipe:
        try:
            timeout_wipe(disk.path)
        except CommandError as exc:
            raise RuntimeError(f"failed to wipe device {disk.path}: {exc}") from exc

    if disk.encrypt:
        try:
            check_encrypt_support()
        except RuntimeError as exc:
            raise RuntimeError(f"encryption unsupported on this machine: {exc}") from exc
        try:
            disk.path = setup_encrypted_osd(disk.path, osd_path, osd_id, suffix)
        except RuntimeError as exc:
            raise RuntimeError(f"failed to encrypt device {disk.path}: {exc}") from exc

    if suffix == "":
        os.symlink(disk.path, os.path.join(osd_path, "block"))
    return disk.path


def validate_bulk_disk_addition_args(
    disks: Sequence[DiskParameter],
    wal: DiskParameter | None,
    db: DiskParameter | None,
) -> None:
    """Raise ValueError if a batch disk request has unsupported arguments."""
    if len(disks) == 1:
        return

    if wal is not None or db is not None:
        message = "wal/db devices are not supported in batch disk addition"
        logger.error(message)
        raise ValueError(message)

    for disk in disks:
        if disk.path.startswith(_LOOP_SPEC_ID):
            message = (
                f"cannot add loop spec '{disk.path}', add a single loop spec or one or more "
                "block device paths"
            )
            logger.error(message)
            raise ValueError(message)


def prepare_validation_failure_resp(
    disks: Sequence[DiskParameter], error: Exception | str
) -> DiskAddResponse:
    """Build the response for a batch request that failed validation."""
    return DiskAddResponse(
        validation_error=str(error),
        reports=[DiskAddReport(path=disk.path, report="Failure", error="") for disk in disks],
    )