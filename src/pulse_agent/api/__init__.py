"""Remote API client and diagnostics upload."""

from pulse_agent.api.client import (
    DIAGNOSTICS_PATH,
    HEARTBEATS_PATH,
    ApiClient,
    ApiError,
    AuthError,
)
from pulse_agent.api.diagnostics import send_diagnostics

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthError",
    "DIAGNOSTICS_PATH",
    "HEARTBEATS_PATH",
    "send_diagnostics",
]
