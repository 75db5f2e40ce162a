"""
Mock Realtime Notifier

Simulates realtime pushes for development.
No messages leave the process - they are logged and kept in memory.

Version: 1.0.0
"""

import logging
import random
from typing import Any

from campus_eats.services.notifications.base import (
    BaseRealtimeNotifier,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockRealtimeNotifier(BaseRealtimeNotifier):
    """Mock notifier for development and tests."""

    def __init__(self, failure_rate: float = 0.0):
        self.failure_rate = failure_rate
        self.events: list[dict[str, Any]] = []
        logger.info(f"MockRealtimeNotifier initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def notify_new_order(
        self,
        outlet_id: str,
        order: dict[str, Any],
    ) -> NotificationResult:
        """Record a new-order event."""
        if self._should_fail():
            logger.warning(f"Mock new_order push failed (simulated) for outlet {outlet_id}")
            return NotificationResult(
                success=False,
                error_message="Simulated realtime failure",
                provider="mock",
            )

        self.events.append({"type": "new_order", "outlet_id": outlet_id, "order": order})
        logger.info(f"Mock new_order push for outlet {outlet_id}: order {order.get('id')}")

        return NotificationResult(success=True, delivered=1, provider="mock")

    async def notify_order_status_update(
        self,
        user_id: str,
        order_id: str,
        status: str,
    ) -> NotificationResult:
        """Record a status-update event."""
        if self._should_fail():
            logger.warning(f"Mock status push failed (simulated) for user {user_id}")
            return NotificationResult(
                success=False,
                error_message="Simulated realtime failure",
                provider="mock",
            )

        self.events.append({
            "type": "order_status_update",
            "user_id": user_id,
            "order_id": order_id,
            "status": status,
        })
        logger.info(f"Mock status push to user {user_id}: order {order_id} -> {status}")

        return NotificationResult(success=True, delivered=1, provider="mock")

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
