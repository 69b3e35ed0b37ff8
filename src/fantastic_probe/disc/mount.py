"""Read-only loop mounting of ISO images with guaranteed cleanup."""

import logging
import os
import re
import subprocess
import time
from collections.abc import Callable
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.disc.remote import read_mount_table
from fantastic_probe.error_handling import MountError

logger = logging.getLogger(__name__)

MOUNT_PREFIX = "bd-lang-"
UNMOUNT_ATTEMPTS = 3


class IsoMounter:
    """Mounts ISOs under PID-suffixed mount points and always tears them down."""

    def __init__(
        self,
        config: ProbeConfig,
        *,
        mounts_file: Path = Path("/proc/mounts"),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.mount_root = config.mount_root
        self.mounts_file = mounts_file
        self.sleep = sleep
        self._stale_pattern = re.compile(
            rf"^{re.escape(str(self.mount_root))}/{MOUNT_PREFIX}\d+$",
        )

    def mount_point_for(self, pid: int | None = None) -> Path:
        return self.mount_root / f"{MOUNT_PREFIX}{pid or os.getpid()}"

    def _command(self, *args: str) -> list[str]:
        prefix = ["sudo"] if self.config.mount_use_sudo else []
        return [*prefix, *args]

    def _run(self, *args: str, timeout: int = 30) -> bool:
        try:
            result = subprocess.run(
                self._command(*args),
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"{args[0]} timed out after {timeout}s")
            return False
        except FileNotFoundError as e:
            logger.warning(f"{args[0]} unavailable: {e}")
            return False
        if result.returncode != 0 and result.stderr.strip():
            logger.debug(f"{args[0]} failed: {result.stderr.strip()}")
        return result.returncode == 0

    def is_mounted(self, mount_point: Path) -> bool:
        target = str(mount_point)
        return any(mp == target for mp, _ in read_mount_table(self.mounts_file))

    def _remove_dir(self, mount_point: Path) -> None:
        try:
            mount_point.rmdir()
        except FileNotFoundError:
            pass
        except OSError:
            # Root-owned mount points need privileges to remove
            self._run("rmdir", str(mount_point))

    def _prepare_mount_point(self, mount_point: Path) -> None:
        if self.is_mounted(mount_point):
            logger.warning(f"Leftover mount at {mount_point}, forcing unmount")
            self._run("umount", "-f", str(mount_point))
        self._remove_dir(mount_point)
        try:
            mount_point.mkdir(parents=True)
        except FileExistsError as e:
            msg = f"Mount point {mount_point} is still in use"
            raise MountError(msg, original_error=e) from e
        except OSError as e:
            if not self._run("mkdir", "-p", str(mount_point)):
                msg = f"Cannot create mount point {mount_point}"
                raise MountError(msg, original_error=e) from e

    def mount(self, image_path: Path) -> Path:
        """Mount ``image_path`` read-only and return the mount point."""
        mount_point = self.mount_point_for()
        self._prepare_mount_point(mount_point)

        logger.info(
            f"Mounting ISO to read language tags (timeout: {self.config.mount_timeout}s)",
        )
        if not self._run(
            "mount",
            "-o",
            "loop,ro",
            str(image_path),
            str(mount_point),
            timeout=self.config.mount_timeout,
        ):
            self._remove_dir(mount_point)
            msg = f"Mounting {image_path.name} failed or timed out"
            raise MountError(msg)

        logger.info(f"ISO mounted at {mount_point}")
        return mount_point

    def unmount(self, mount_point: Path) -> bool:
        """Unmount gracefully, then forcibly; never raises.

        Returns False when the mount point is still mounted afterwards.
        """
        attempts = 0
        while self.is_mounted(mount_point) and attempts < UNMOUNT_ATTEMPTS:
            if self._run("umount", str(mount_point)):
                break
            attempts += 1
            self.sleep(1)

        if self.is_mounted(mount_point):
            logger.warning(f"Graceful unmount failed, forcing: {mount_point}")
            if not self._run("umount", "-f", str(mount_point)):
                logger.error(f"Forced unmount failed: {mount_point}")

        self._remove_dir(mount_point)

        if self.is_mounted(mount_point):
            logger.error(f"ISO unmount failed, mount point may leak: {mount_point}")
            return False

        logger.info("ISO unmounted")
        return True

    def cleanup_stale_mounts(self) -> int:
        """Tear down mount points left by earlier runs that died mid-extraction."""
        stale = [
            Path(mp)
            for mp, _ in read_mount_table(self.mounts_file)
            if self._stale_pattern.match(mp)
        ]

        if stale:
            logger.warning("Found leftover mount points, cleaning up")
        for mount_point in stale:
            logger.info(f"  Cleaning mount point: {mount_point}")
            self._run("umount", "-f", str(mount_point))
            self._remove_dir(mount_point)

        if self.mount_root.is_dir():
            for leftover in self.mount_root.glob(f"{MOUNT_PREFIX}*"):
                if leftover.is_dir() and not any(leftover.iterdir()):
                    self._remove_dir(leftover)

        return len(stale)
