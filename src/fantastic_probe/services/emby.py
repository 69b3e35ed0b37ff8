"""Emby library refresh notifications."""

import logging
import threading

import httpx

from fantastic_probe import __version__
from fantastic_probe.config import ProbeConfig

logger = logging.getLogger(__name__)


class EmbyNotifier:
    """Asks Emby to rescan its library once a new descriptor exists."""

    def __init__(self, config: ProbeConfig):
        self.config = config

    @property
    def enabled(self) -> bool:
        return self.config.emby_enabled

    def _refresh_url(self) -> str:
        return f"{(self.config.emby_url or '').rstrip('/')}/Library/Refresh"

    def send_refresh(self) -> bool:
        """POST the refresh request. Never raises."""
        try:
            with httpx.Client(
                timeout=self.config.emby_notify_timeout,
                headers={"User-Agent": f"Fantastic-Probe/{__version__}"},
            ) as client:
                response = client.post(
                    self._refresh_url(),
                    json={},
                    headers={"X-Emby-Token": self.config.emby_api_key or ""},
                )
        except httpx.HTTPError as e:
            logger.warning(f"Emby API call failed: {e}")
            return False

        if response.status_code in (200, 204):
            logger.info(f"Emby library refresh requested (HTTP {response.status_code})")
            return True

        logger.warning(f"Emby API call failed (HTTP {response.status_code})")
        logger.debug(f"Response: {response.text[:200]}")
        return False

    def notify_refresh(self) -> threading.Thread | None:
        """Fire the refresh request on a background thread.

        Returns the started thread, or None when notifications are off or the
        URL or API key is missing.
        """
        if not self.enabled:
            logger.debug("Emby integration disabled, skipping notification")
            return None

        if not self.config.emby_url or not self.config.emby_api_key:
            logger.warning("Emby configuration incomplete (URL or API key missing)")
            return None

        logger.info("Notifying Emby to refresh media library")
        logger.debug(f"Emby URL: {self.config.emby_url}")
        thread = threading.Thread(
            target=self.send_refresh,
            name="emby-refresh",
        )
        thread.start()
        return thread
