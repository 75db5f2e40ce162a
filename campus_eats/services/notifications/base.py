"""
Realtime Notifier Abstract Base Class

Defines the outbound push channel the order services use to tell an
outlet owner about a new order and a student about a status change.
Supports both Mock (development) and WebSocket (staging/production)
implementations.

Notifications are best effort: they are never persisted or replayed,
and a failed push must never fail the order operation that caused it.

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class NotificationResult:
    """Result from pushing a realtime event."""
    success: bool
    delivered: int = 0
    error_message: Optional[str] = None
    provider: str = "unknown"


class BaseRealtimeNotifier(ABC):
    """Abstract base class for realtime notifiers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def notify_new_order(
        self,
        outlet_id: str,
        order: dict[str, Any],
    ) -> NotificationResult:
        """Tell the outlet's connected owner sessions about a new order."""
        pass

    @abstractmethod
    async def notify_order_status_update(
        self,
        user_id: str,
        order_id: str,
        status: str,
    ) -> NotificationResult:
        """Tell the ordering student's sessions about a status change."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check notifier availability."""
        pass
