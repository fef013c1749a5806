"""
Vision Module

Remote vision model access with quota-aware retries, the circuit breaker and
the privacy detection scheduler.
"""

from .client import GeminiVisionClient, VisionAPIError, VisionError, VisionResponseError
from .resilience import QuotaCircuitBreaker, QuotaExceededError, ResilientInvoker
from .scheduler import DetectionRunReport, PrivacyDetectionScheduler, SchedulerState

__all__ = [
    "DetectionRunReport",
    "GeminiVisionClient",
    "PrivacyDetectionScheduler",
    "QuotaCircuitBreaker",
    "QuotaExceededError",
    "ResilientInvoker",
    "SchedulerState",
    "VisionAPIError",
    "VisionError",
    "VisionResponseError",
]
