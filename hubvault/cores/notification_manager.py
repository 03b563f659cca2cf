################################################################################
# HUBVAULT
#
# @file:        notification_manager.py
# @module:      hubvault.cores.notification_manager
# @description: Webhook and e-mail notifications for pipeline results via Apprise.
# @author:      HubVault Contributors
# @repository:  https://github.com/hubvault/hubvault
# @version:     1.0.0
#
# ------------------------------------------------------------------------------
# Copyright (c) 2025 HubVault Contributors
# MIT-Lizenz: siehe LICENSE oder https://opensource.org/licenses/MIT
# ==============================================================================
# Hinweise:
# - Fire-and-forget: delivery runs in a worker thread with TIMEOUT_SECONDS
# - Never raises; a failed notification never fails a backup
# - WEBHOOK_URL http(s) -> json(s)://, EMAIL_TO -> mailto:// (SMTP_URL)
################################################################################

"""
Notification management module.

Sends one message per pipeline run to every configured channel. Channels are
converted to Apprise URLs, so any Apprise URL can also be given directly as
WEBHOOK_URL.
"""

import concurrent.futures
import socket
from typing import List, Optional, Tuple

from ..helpers.config import HubConfig
from ..helpers.logging import get_logger
from ..types import OperationRecord

logger = get_logger(__name__)

DEFAULT_SMTP_URL = "mailto://localhost"


class NotificationManager:
    """Delivers pipeline results to webhook and e-mail targets."""

    TIMEOUT_SECONDS = 10

    def __init__(self, config: HubConfig):
        self.config = config
        self.hostname = socket.gethostname()

    @property
    def enabled(self) -> bool:
        return self.config.notifications_enabled

    # ------------------------------------------------------------------
    # URL building
    # ------------------------------------------------------------------

    def _build_webhook_url(self) -> Optional[str]:
        url = (self.config.webhook_url or "").strip()
        if not url:
            return None
        if url.startswith("https://"):
            return "jsons://" + url[len("https://"):]
        if url.startswith("http://"):
            return "json://" + url[len("http://"):]
        # Already an Apprise URL (slack://, discord://, ...)
        return url

    def _build_email_url(self) -> Optional[str]:
        recipient = (self.config.email_to or "").strip()
        if not recipient:
            return None
        base = (self.config.smtp_url or DEFAULT_SMTP_URL).strip()
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}to={recipient}"

    def _build_apprise_urls(self) -> List[str]:
        return [u for u in (self._build_webhook_url(), self._build_email_url()) if u]

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_success_message(self, record: OperationRecord) -> Tuple[str, str]:
        title = f"HubVault: {record.operation} succeeded on {self.hostname}"
        lines = [
            f"Operation: {record.operation}",
            "Status: success",
            f"Duration: {record.duration_seconds:.0f}s",
        ]
        if record.snapshot_id:
            lines.append(f"Snapshot: {record.snapshot_id}")
        if record.stages:
            lines.append("Stages: " + " -> ".join(s.value for s in record.stages))
        if record.warnings:
            lines.append(f"Warnings ({len(record.warnings)}):")
            lines.extend(f"  - {w}" for w in record.warnings[:5])
        return title, "\n".join(lines)

    def _render_failure_message(self, record: OperationRecord) -> Tuple[str, str]:
        title = f"HubVault: {record.operation} FAILED on {self.hostname}"
        last_stage = record.stages[-1].value if record.stages else "none"
        lines = [
            f"Operation: {record.operation}",
            "Status: failure",
            f"Error: {record.error or 'unknown error'}",
            f"Last completed stage: {last_stage}",
            f"Duration: {record.duration_seconds:.0f}s",
        ]
        if record.warnings:
            lines.append(f"Warnings ({len(record.warnings)}):")
            lines.extend(f"  - {w}" for w in record.warnings[:5])
            if len(record.warnings) > 5:
                lines.append(f"  ... and {len(record.warnings) - 5} more")
        return title, "\n".join(lines)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_result(self, record: OperationRecord) -> bool:
        """Send the success or failure message matching the record's status."""
        if record.success:
            return self.send_success(record)
        return self.send_failure(record)

    def send_success(self, record: OperationRecord) -> bool:
        if not self.enabled:
            return True
        title, body = self._render_success_message(record)
        return self._send_notification(title, body)

    def send_failure(self, record: OperationRecord) -> bool:
        if not self.enabled:
            return True
        title, body = self._render_failure_message(record)
        return self._send_notification(title, body, failure=True)

    def send_test(self) -> bool:
        return self._send_notification(
            f"HubVault: test notification from {self.hostname}",
            "Notifications are configured correctly.",
        )

    def _send_notification(self, title: str, body: str, failure: bool = False) -> bool:
        """
        Deliver a message to all configured targets.

        Returns:
            True if at least one target accepted the message
        """
        urls = self._build_apprise_urls()
        if not urls:
            logger.debug("No notification targets configured")
            return False

        def _do_send() -> bool:
            import apprise

            apobj = apprise.Apprise()
            for url in urls:
                apobj.add(url)
            notify_type = apprise.NotifyType.FAILURE if failure else apprise.NotifyType.SUCCESS
            return bool(apobj.notify(title=title, body=body, notify_type=notify_type))

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(_do_send)
            sent = future.result(timeout=self.TIMEOUT_SECONDS)
        except concurrent.futures.TimeoutError:
            logger.warning(f"Notification timed out after {self.TIMEOUT_SECONDS}s")
            return False
        except Exception as e:
            logger.warning(f"Notification failed: {e}")
            return False
        finally:
            executor.shutdown(wait=False)

        if sent:
            logger.info("Notification sent", extra={"targets": len(urls)})
        else:
            logger.warning("Notification was not accepted by any target")
        return sent
