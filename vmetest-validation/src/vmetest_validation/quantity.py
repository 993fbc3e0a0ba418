"""Resource magnitude parsing and tolerance comparison.

Declared resource quantities (``4Gi``, ``512Mi``) and guest-reported sizes
(``10G`` from lsblk, ``3913`` from free -m) are normalized to plain numbers
before comparison.
"""

from __future__ import annotations

import json
import re
from typing import Any

from vmetest_core.errors import QuantityError

_MEMORY_RE = re.compile(r"^(\d+)(Gi|Mi|G|M)$")
_DISK_RE = re.compile(r"^(\d+)(Ti|Gi|T|G)$")
_GUEST_DISK_SIZE_RE = re.compile(r"^[0-9]+(\.)?[0-9]*[GT]")

_MEMORY_MB = {"Gi": 1024, "Mi": 1, "G": 1000, "M": 1}
_DISK_GB = {"Ti": 1024, "Gi": 1, "T": 1000, "G": 1}

# Guest block devices that are never data disks
ROOT_DEVICES = frozenset({"vda", "sda"})


def memory_to_mb(quantity: str) -> int:
    """Convert a memory quantity to megabytes.

    ``Gi`` is multiplied by 1024, ``G`` by 1000; ``Mi`` and ``M`` are taken
    as-is.

    Args:
        quantity: Quantity string such as ``4Gi``.

    Returns:
        Size in megabytes.

    Raises:
        QuantityError: If the string is not a recognized memory quantity.
    """
    match = _MEMORY_RE.match(quantity.strip())
    if not match:
        raise QuantityError(f"Cannot parse memory format '{quantity}'")
    return int(match.group(1)) * _MEMORY_MB[match.group(2)]


def disk_to_gb(quantity: str) -> int:
    """Convert a disk quantity to gigabytes.

    Args:
        quantity: Quantity string such as ``2Ti`` or ``500Gi``.

    Returns:
        Size in gigabytes.

    Raises:
        QuantityError: If the string is not a recognized disk quantity.
    """
    match = _DISK_RE.match(quantity.strip())
    if not match:
        raise QuantityError(f"Cannot parse size format '{quantity}'")
    return int(match.group(1)) * _DISK_GB[match.group(2)]


def size_number(size: str) -> float:
    """Return the numeric part of a size string (``10.5G`` -> 10.5).

    Raises:
        QuantityError: If no number is present.
    """
    digits = re.sub(r"[^0-9.]", "", size)
    try:
        return float(digits)
    except ValueError as exc:
        raise QuantityError(f"Cannot parse size '{size}'") from exc


def parse_count(output: str) -> int:
    """Extract an integer from the first line of command output.

    Non-digit characters are dropped; empty output yields 0.
    """
    lines = output.strip().splitlines()
    if not lines:
        return 0
    digits = re.sub(r"[^0-9]", "", lines[0])
    return int(digits) if digits else 0


def within_percent(actual: int, expected: int, percent: int) -> bool:
    """Return True if actual lies in expected +/- percent (integer band).

    Args:
        actual: Measured value.
        expected: Expected value.
        percent: Tolerance percentage.
    """
    tolerance = expected * percent // 100
    return expected - tolerance <= actual <= expected + tolerance


def disk_size_matches(
    actual: float, expected: float, percent: float = 5.0, absolute: float = 1.0
) -> bool:
    """Return True unless the difference exceeds both the percentage and absolute bands.

    Args:
        actual: Guest-reported size.
        expected: Expected size in the same unit.
        percent: Relative tolerance.
        absolute: Absolute tolerance.
    """
    diff = abs(expected - actual)
    return not (diff > expected * percent / 100 and diff > absolute)


def parse_block_devices(output: str) -> list[dict[str, Any]]:
    """Parse ``lsblk --json`` output into the list of block devices.

    Raises:
        QuantityError: If the output is not lsblk JSON.
    """
    try:
        data = json.loads(output)
        return list(data["blockdevices"])
    except (ValueError, KeyError, TypeError) as exc:
        raise QuantityError("Cannot parse lsblk output") from exc


def is_data_disk(device: dict[str, Any], require_size: bool = True) -> bool:
    """Return True for a non-root, non-swap disk of at least gigabyte scale.

    Args:
        device: lsblk device entry with name, type and size.
        require_size: Also require a ``G`` or ``T`` size, which excludes
            small devices such as the cloud-init disk.
    """
    name = str(device.get("name", ""))
    if device.get("type") != "disk" or name in ROOT_DEVICES or name.startswith("zram"):
        return False
    if require_size:
        return bool(_GUEST_DISK_SIZE_RE.match(str(device.get("size", ""))))
    return True


def strip_binary_suffix(quantity: str) -> float:
    """Return the number of a ``Gi`` or ``G`` quantity (``10Gi`` -> 10.0)."""
    value = re.sub(r"(Gi|G)$", "", quantity.strip())
    try:
        return float(value)
    except ValueError as exc:
        raise QuantityError(f"Cannot parse size format '{quantity}'") from exc
