"""Detection of ISOs living on remote or virtual (FUSE/network) filesystems."""

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

RemoteMountPredicate = Callable[[Path], bool]

NETWORK_FILESYSTEMS = {"nfs", "nfs4", "cifs", "smb3", "smbfs", "davfs", "9p"}


def decode_mount_field(field: str) -> str:
    """Undo the octal escaping /proc/mounts applies to spaces and tabs."""
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def read_mount_table(mounts_file: Path = Path("/proc/mounts")) -> list[tuple[str, str]]:
    """Return ``(mount_point, fs_type)`` pairs from a mounts table."""
    entries = []
    try:
        with open(mounts_file) as f:
            for line in f:
                parts = line.split()
                if len(parts) >= 3:
                    entries.append((decode_mount_field(parts[1]), parts[2]))
    except OSError as e:
        logger.debug(f"Cannot read mount table {mounts_file}: {e}")
    return entries


def owning_mount(path: Path, entries: Iterable[tuple[str, str]]) -> tuple[str, str] | None:
    """Longest mount point that contains ``path``."""
    target = os.path.abspath(str(path))
    best: tuple[str, str] | None = None
    for mount_point, fs_type in entries:
        prefix = mount_point.rstrip("/") + "/"
        if target == mount_point or target.startswith(prefix) or mount_point == "/":
            if best is None or len(mount_point) > len(best[0]):
                best = (mount_point, fs_type)
    return best


def is_remote_fs_type(fs_type: str) -> bool:
    return fs_type.startswith("fuse") or fs_type in NETWORK_FILESYSTEMS


class RemoteMountDetector:
    """Callable predicate: does this path sit on a remote/virtual mount?"""

    def __init__(
        self,
        markers: Iterable[str],
        mounts_file: Path = Path("/proc/mounts"),
    ):
        self.markers = [m.lower() for m in markers]
        self.mounts_file = mounts_file

    def __call__(self, path: Path | str) -> bool:
        path_str = str(path)
        lowered = path_str.lower()
        for marker in self.markers:
            if marker in lowered:
                logger.debug(f"Remote mount detected by path marker '{marker}'")
                return True

        mount = owning_mount(Path(path_str), read_mount_table(self.mounts_file))
        if mount and is_remote_fs_type(mount[1]):
            logger.debug(f"Remote mount detected: {mount[0]} ({mount[1]})")
            return True

        return False
