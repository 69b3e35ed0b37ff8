"""Single-instance, batch-limited scanning of placeholder files."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.core.pipeline import PlaceholderProcessor
from fantastic_probe.disc.mount import IsoMounter
from fantastic_probe.disc.protocol import PLACEHOLDER_SUFFIX, descriptor_path_for
from fantastic_probe.error_handling import (
    ConfigurationError,
    FantasticProbeError,
    check_dependencies,
    check_optional_dependencies,
)
from fantastic_probe.process_lock import ProcessLock
from fantastic_probe.storage.failure_cache import FailureCache

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """Outcome of one scan invocation."""

    lock_held: bool = False
    discovered: int = 0
    skipped: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    remaining: int = 0
    failures: dict[str, str] = field(default_factory=dict)


class ScanOrchestrator:
    """Finds placeholders without descriptors and processes them one by one."""

    def __init__(
        self,
        config: ProbeConfig,
        *,
        processor: PlaceholderProcessor | None = None,
        failure_cache: FailureCache | None = None,
        mounter: IsoMounter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        check_tools: bool = True,
    ):
        self.config = config
        self.mounter = mounter or IsoMounter(config)
        self.failure_cache = failure_cache or FailureCache(config)
        self.processor = processor or PlaceholderProcessor(config, sleep=sleep)
        self.sleep = sleep
        self.check_tools = check_tools

    def _check_environment(self) -> None:
        if self.check_tools:
            errors = check_dependencies(self.config)
            if errors:
                raise errors[0]
            for missing in check_optional_dependencies(self.config):
                logger.warning(f"Optional dependency missing: {missing}")

        if not self.config.strm_root.is_dir():
            msg = f"Placeholder root does not exist: {self.config.strm_root}"
            raise ConfigurationError(msg, solution="Set strm_root in the configuration file")

    def discover_pending(self) -> list[Path]:
        """Placeholders under ``strm_root`` that have no descriptor yet, sorted."""
        return sorted(
            p
            for p in self.config.strm_root.rglob(f"*{PLACEHOLDER_SUFFIX}")
            if p.is_file() and not descriptor_path_for(p).exists()
        )

    def process_item(self, placeholder: Path, report: ScanReport) -> bool:
        """Process one placeholder, recording recoverable failures.

        Non-recoverable errors (missing tools, full disk) propagate and end
        the scan.
        """
        try:
            self.processor.process(placeholder)
        except FantasticProbeError as e:
            if not e.recoverable:
                raise
            self._record_failure(placeholder, e.message, report)
            return False
        except Exception as e:
            logger.exception(f"Unexpected error processing {placeholder.name}")
            self._record_failure(placeholder, str(e) or type(e).__name__, report)
            return False

        logger.info(f"Processed successfully: {placeholder.name}")
        report.succeeded += 1
        return True

    def _record_failure(self, placeholder: Path, message: str, report: ScanReport) -> None:
        logger.error(f"Processing failed: {placeholder.name} - {message}")
        report.failed += 1
        report.failures[str(placeholder)] = message

        count = self.failure_cache.record(str(placeholder), message)
        if count >= self.config.max_retry_count:
            logger.error(
                f"Reached max retry count ({self.config.max_retry_count}), "
                f"{placeholder} will be skipped from now on. "
                f"Run 'fantastic-probe cache reset \"{placeholder}\"' to retry it.",
            )

    def run(self) -> ScanReport:
        """Run one scan pass. Returns immediately if another scan holds the lock."""
        lock = ProcessLock(self.config.scan_lock_file)
        if not lock.acquire():
            logger.debug("Another scan is still running, exiting")
            return ScanReport(lock_held=True)

        report = ScanReport()
        try:
            self._check_environment()

            cleaned = self.mounter.cleanup_stale_mounts()
            if cleaned:
                logger.info(f"Cleaned up {cleaned} stale mount points")

            discovered = self.discover_pending()
            report.discovered = len(discovered)
            pending = []
            for placeholder in discovered:
                if self.failure_cache.should_skip(str(placeholder)):
                    report.skipped += 1
                else:
                    pending.append(placeholder)

            # Empty scans stay silent
            if not pending:
                return report

            batch = pending[: self.config.scan_batch_size]
            report.remaining = len(pending) - len(batch)
            logger.info(f"Found {len(pending)} placeholders to process")

            for number, placeholder in enumerate(batch, start=1):
                self.process_item(placeholder, report)
                report.processed += 1
                if number < len(batch) and self.config.scan_item_interval > 0:
                    self.sleep(self.config.scan_item_interval)

            if report.remaining:
                logger.warning(
                    f"Reached batch limit ({self.config.scan_batch_size}), "
                    f"{report.remaining} files left for the next scan",
                )
            logger.info(
                f"Scan finished: {report.succeeded} succeeded, {report.failed} failed",
            )
            return report
        finally:
            lock.release()

    def run_single(self, placeholder: Path) -> ScanReport:
        """Process one placeholder under the scan lock, ignoring skip state."""
        lock = ProcessLock(self.config.scan_lock_file)
        if not lock.acquire():
            logger.warning("Another scan is running, try again later")
            return ScanReport(lock_held=True)

        report = ScanReport(discovered=1)
        try:
            self._check_environment()
            self.process_item(placeholder, report)
            report.processed = 1
            return report
        finally:
            lock.release()
