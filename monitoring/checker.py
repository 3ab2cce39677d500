"""
============================================================================
UPTIME PULSE - HEALTH CHECK EXECUTOR
============================================================================
Performs the single bounded HTTP GET that decides a monitor's status.

Classification
--------------
• 2xx / 3xx response            → up
• any other status code         → down   (status_code kept)
• connect / read / pool timeout → timeout
• DNS, refused, TLS, other      → down   (error_message kept)

There is no in-process retry. A check that could not be run at all
(infrastructure error) is retried by queue redelivery, a check that ran and
failed is a classification, not an error.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from config.constants import Defaults, MonitorStatus
from config.settings import MonitoringSettings
from utils.helpers import utcnow
from utils.logger import get_logger


logger = get_logger("HealthCheck")


# ============================================================================
# CHECK RESULT DATACLASS
# ============================================================================

@dataclass
class CheckResult:
    """
    Value object carrying the outcome of one check back to the worker.

    ``response_time`` is in milliseconds and is captured for every
    outcome, including timeouts and connection errors.
    """
    status: MonitorStatus
    response_time: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime = field(default_factory=utcnow)

    @property
    def is_failure(self) -> bool:
        return self.status in MonitorStatus.failures()

    def to_history_record(self, monitor_id: str, user_id: str) -> Dict[str, Any]:
        """Row for the monitoring_history table."""
        return {
            "monitor_id": monitor_id,
            "user_id": user_id,
            "status": self.status.value,
            "response_time": self.response_time,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "checked_at": self.checked_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "response_time": self.response_time,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "checked_at": self.checked_at.isoformat(),
        }


# ============================================================================
# HTTP CHECK EXECUTOR
# ============================================================================

class HealthCheckExecutor:
    """
    Runs GET checks through a shared httpx.AsyncClient.

    The request carries an httpx timeout and is additionally wrapped in
    ``asyncio.wait_for`` so a slow body stream cannot outlive the
    monitor's timeout.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: Optional[MonitoringSettings] = None):
        self.http_client = http_client
        self.settings = settings or MonitoringSettings()
        self.default_timeout = self.settings.default_timeout or Defaults.CHECK_TIMEOUT_SECONDS

    async def check(self, url: str, timeout_seconds: Optional[float] = None) -> CheckResult:
        """
        Execute a check against *url*.

        Parameters
        ----------
        url : str
            Target endpoint.
        timeout_seconds : float, optional
            Hard limit for the whole request; the configured default when
            omitted.

        Returns
        -------
        CheckResult
            Never raises for target-side failures.
        """
        timeout = float(timeout_seconds or self.default_timeout)
        headers = {"User-Agent": self.settings.user_agent}
        start_time = time.perf_counter()

        def elapsed_ms() -> int:
            return int(round((time.perf_counter() - start_time) * 1000))

        try:
            response = await asyncio.wait_for(
                self.http_client.get(
                    url,
                    headers=headers,
                    timeout=httpx.Timeout(
                        connect=min(timeout, 10),
                        read=timeout,
                        write=timeout,
                        pool=timeout
                    ),
                    follow_redirects=self.settings.follow_redirects,
                ),
                timeout=timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            response_time = elapsed_ms()
            logger.warning(f"[HTTP] {url} timed out after {timeout:.0f}s")
            return CheckResult(
                status=MonitorStatus.TIMEOUT,
                response_time=response_time,
                error_message=f"Request timed out after {timeout:.0f}s",
            )
        except httpx.ConnectError as e:
            response_time = elapsed_ms()
            logger.warning(f"[HTTP] {url} connection error: {e}")
            return CheckResult(
                status=MonitorStatus.DOWN,
                response_time=response_time,
                error_message=f"Connection error: {str(e)[:200]}",
            )
        except (httpx.InvalidURL, ValueError) as e:
            # malformed target URL; httpx raises these before any I/O
            response_time = elapsed_ms()
            logger.warning(f"[HTTP] {url!r} is not a valid URL: {e}")
            return CheckResult(
                status=MonitorStatus.DOWN,
                response_time=response_time,
                error_message=f"Invalid URL: {str(e)[:200]}",
            )
        except httpx.HTTPError as e:
            response_time = elapsed_ms()
            logger.warning(f"[HTTP] {url} request failed: {e}")
            return CheckResult(
                status=MonitorStatus.DOWN,
                response_time=response_time,
                error_message=f"{type(e).__name__}: {str(e)[:200]}",
            )

        response_time = elapsed_ms()
        if 200 <= response.status_code < 400:
            logger.debug(f"[HTTP] {url} → {response.status_code} in {response_time}ms")
            return CheckResult(
                status=MonitorStatus.UP,
                response_time=response_time,
                status_code=response.status_code,
            )

        logger.warning(f"[HTTP] {url} → status {response.status_code}")
        return CheckResult(
            status=MonitorStatus.DOWN,
            response_time=response_time,
            status_code=response.status_code,
            error_message=f"HTTP {response.status_code}: {response.reason_phrase}",
        )
