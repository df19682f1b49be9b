"""Offline queue and the save-without-sending path."""

from pulse_agent.offline.queue import (
    OfflineQueue,
    OfflineQueueError,
    OfflineSender,
    OfflineSendError,
    with_queue,
)

__all__ = [
    "OfflineQueue",
    "OfflineQueueError",
    "OfflineSendError",
    "OfflineSender",
    "with_queue",
]
