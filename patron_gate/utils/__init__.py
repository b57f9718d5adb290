"""Small shared helpers."""

from .clock import Clock, epoch_ms
from .http import RetryConfig, send_with_retry

__all__ = ["Clock", "RetryConfig", "epoch_ms", "send_with_retry"]
