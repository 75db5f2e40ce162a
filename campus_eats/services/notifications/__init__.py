"""
Realtime Notifier Factory

Returns Mock or WebSocket notifier based on ENV_MODE.

The mock only logs and records events, so in development `/ws` clients
stay registered but are never pushed order events.

Version: 1.0.0
"""

import logging
from functools import lru_cache

from campus_eats.core.config import get_settings
from campus_eats.services.notifications.base import (
    BaseRealtimeNotifier,
    NotificationResult,
)
from campus_eats.services.notifications.mock import MockRealtimeNotifier
from campus_eats.services.notifications.websocket import (
    ConnectionRegistry,
    RealtimeClient,
    WebSocketNotifier,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_connection_registry() -> ConnectionRegistry:
    """Process-wide registry of connected WebSocket clients."""
    return ConnectionRegistry()


@lru_cache()
def get_notifier() -> BaseRealtimeNotifier:
    """Get the configured realtime notifier."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Realtime Notifier: Using MockRealtimeNotifier (development mode)")
        return MockRealtimeNotifier(failure_rate=settings.notifier_failure_rate)
    else:
        logger.info(f"Realtime Notifier: Using WebSocketNotifier ({settings.env_mode.value} mode)")
        return WebSocketNotifier(get_connection_registry())


def reset_notifier() -> None:
    """Clear the cached notifier instance."""
    get_notifier.cache_clear()


__all__ = [
    "get_notifier",
    "get_connection_registry",
    "reset_notifier",
    "BaseRealtimeNotifier",
    "NotificationResult",
    "MockRealtimeNotifier",
    "WebSocketNotifier",
    "ConnectionRegistry",
    "RealtimeClient",
]
