"""
Notifications Module
"""
from .channels import (
    AbstractNotifications,
    DispatchOutcome,
    HttpRelayNotifications,
    LoggingNotifications,
    build_channel,
)

__all__ = [
    "AbstractNotifications",
    "DispatchOutcome",
    "HttpRelayNotifications",
    "LoggingNotifications",
    "build_channel",
]
