"""Sequential job execution and periodic polling."""

from __future__ import annotations

from polymarket_sync.scheduler.polling import PollingService, RepeatingTimer
from polymarket_sync.scheduler.retry_queue import QueuedJob, RetryQueue

__all__ = ["PollingService", "QueuedJob", "RepeatingTimer", "RetryQueue"]
