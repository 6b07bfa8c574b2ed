# booking_engine/services/alert_notifier.py
"""
Outbound failure alerts for background jobs.

Posts a small JSON document to ``settings.alert_webhook_url``. Delivery
problems are logged; they never fail the job that raised the alert.
"""

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

import httpx

from ..core.config import settings
from ..core.timezone_utils import utc_now

if TYPE_CHECKING:
    from .status_lifecycle_service import JobRunResult

logger = logging.getLogger(__name__)

JOB_FAILURE_EVENT = "auto_complete_failed"


class AlertNotifier:
    """Sends job failure alerts to the configured webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        client_factory: Optional[Callable[..., httpx.Client]] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.alert_webhook_url
        self._client_factory = client_factory or httpx.Client

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(self, result: "JobRunResult", now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "event": JOB_FAILURE_EVENT,
            "message": result.error or "Status lifecycle job failed",
            "time": utc_now(now).isoformat(),
            "run_id": result.run_id,
        }

    def notify_job_failure(self, result: "JobRunResult") -> bool:
        """
        Post the failure alert.

        Returns:
            True when the webhook accepted the alert
        """
        if not self.enabled:
            logger.debug("Alert webhook not configured; skipping job failure alert")
            return False

        payload = self.build_payload(result)
        timeout = httpx.Timeout(10.0, connect=5.0)
        try:
            with self._client_factory(timeout=timeout) as client:
                response = client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                f"Failed to deliver job failure alert: {str(e)}",
                extra={"run_id": result.run_id, "event": JOB_FAILURE_EVENT},
            )
            return False

        logger.info(
            f"Job failure alert delivered for run {result.run_id}",
            extra={"run_id": result.run_id},
        )
        return True
