"""Probe a disc image with retries, then fall back to the other protocol."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from fantastic_probe.config import ProbeConfig
from fantastic_probe.disc.protocol import DiscType
from fantastic_probe.disc.remote import RemoteMountDetector, RemoteMountPredicate
from fantastic_probe.error_handling import ToolError
from fantastic_probe.probe.models import ProbeResult
from fantastic_probe.probe.retry import (
    BackoffPolicy,
    Deadline,
    RetryExhaustedError,
    retry_call,
)
from fantastic_probe.services.ffprobe import FFProbe

logger = logging.getLogger(__name__)


@dataclass
class ProbeOutcome:
    """Successful probe plus how it was obtained."""

    result: ProbeResult
    protocol: DiscType
    attempts: int
    used_fallback: bool


class ProbeExtractor:
    """Gets stream data out of an ISO despite flaky remote reads.

    Each protocol gets ``policy.attempts`` tries on a fixed backoff schedule.
    The detected protocol goes first; file names lie often enough that the
    other protocol is always tried before giving up.
    """

    def __init__(
        self,
        config: ProbeConfig,
        *,
        prober: FFProbe | None = None,
        is_remote: RemoteMountPredicate | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.prober = prober or FFProbe(config)
        self.is_remote = is_remote or RemoteMountDetector(config.remote_path_markers)
        self.sleep = sleep

    def extract(
        self,
        image_path: Path,
        disc_type: DiscType,
        deadline: Deadline | None = None,
    ) -> ProbeOutcome:
        remote = self.is_remote(image_path)
        policy = BackoffPolicy.for_path(remote)
        if remote:
            logger.debug(f"Remote file: using long retry intervals {policy.delays}")
        else:
            logger.debug(f"Local file: using standard retry intervals {policy.delays}")

        for protocol in (disc_type, disc_type.fallback):
            used_fallback = protocol is not disc_type
            if used_fallback:
                logger.warning(
                    f"{disc_type.value} protocol failed ({policy.attempts} attempts), "
                    f"trying {protocol.value} protocol",
                )
            else:
                logger.info(f"Trying {protocol.value} protocol")

            try:
                result, attempt = retry_call(
                    lambda attempt, p=protocol: self._attempt(
                        image_path, p, attempt, policy, deadline,
                    ),
                    policy,
                    sleep=self.sleep,
                    deadline=deadline,
                    retry_on=(ToolError,),
                    label=f"{protocol.value} protocol",
                )
            except RetryExhaustedError:
                if deadline is not None and deadline.expired:
                    break
                continue

            suffix = " (fallback)" if used_fallback else ""
            logger.info(
                f"{protocol.value} protocol succeeded{suffix} "
                f"(attempt {attempt}/{policy.attempts})",
            )
            return ProbeOutcome(
                result=result,
                protocol=protocol,
                attempts=attempt,
                used_fallback=used_fallback,
            )

        if deadline is not None and deadline.expired:
            msg = (
                f"Probing exceeded the {self.config.max_file_processing_time}s "
                "processing time budget"
            )
            raise ToolError(msg)

        msg = f"Both bluray and dvd protocols failed ({policy.attempts} attempts each)"
        logger.error(msg)
        raise ToolError(msg)

    def _attempt(
        self,
        image_path: Path,
        protocol: DiscType,
        attempt: int,
        policy: BackoffPolicy,
        deadline: Deadline | None,
    ) -> ProbeResult:
        timeout = self.config.ffprobe_timeout
        if deadline is not None:
            timeout = max(1, min(timeout, int(deadline.remaining)))
        logger.info(
            f"Running ffprobe ({protocol.value}, attempt {attempt}/{policy.attempts}, "
            f"timeout {timeout}s)",
        )
        return self.prober.probe(image_path, protocol, timeout)
