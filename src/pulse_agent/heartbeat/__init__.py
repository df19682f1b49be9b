"""Heartbeat model, handler chain, and the stages that live beside the model."""

from pulse_agent.heartbeat.handle import Handle, HandleOption, Sender, new_handle
from pulse_agent.heartbeat.models import (
    Category,
    EntityType,
    Heartbeat,
    Result,
    ResultStatus,
    user_agent,
)

__all__ = [
    "Category",
    "EntityType",
    "Handle",
    "HandleOption",
    "Heartbeat",
    "Result",
    "ResultStatus",
    "Sender",
    "new_handle",
    "user_agent",
]
