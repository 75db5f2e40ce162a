"""
WebSocket Realtime Notifier

Production implementation: pushes JSON events to clients connected on
the `/ws` endpoint. Connected clients live in a ConnectionRegistry that
is injected into the notifier, so the registry can be swapped for a fake
in tests. The registry is process-local and starts empty on every
restart; clients are expected to reconnect.

Version: 1.0.0
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from campus_eats.services.notifications.base import (
    BaseRealtimeNotifier,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class JSONSocket(Protocol):
    """The part of a WebSocket connection the notifier needs."""

    async def send_json(self, data: Any) -> None:
        ...


@dataclass
class RealtimeClient:
    """An authenticated connection."""
    client_id: str
    websocket: JSONSocket
    user_id: str
    role: str
    outlet_id: Optional[str] = None


class ConnectionRegistry:
    """Connected clients keyed by `<user_id>-<connect time>`."""

    def __init__(self):
        self._clients: dict[str, RealtimeClient] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def register(
        self,
        websocket: JSONSocket,
        user_id: str,
        role: str,
        outlet_id: Optional[str] = None,
    ) -> RealtimeClient:
        client_id = f"{user_id}-{time.time_ns()}"
        client = RealtimeClient(
            client_id=client_id,
            websocket=websocket,
            user_id=user_id,
            role=role,
            outlet_id=outlet_id,
        )
        self._clients[client_id] = client
        logger.info(
            f"Client connected: {user_id} ({role}"
            f"{f', outlet: {outlet_id}' if outlet_id else ''})"
        )
        return client

    def unregister(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            logger.info(f"Client disconnected: {client_id}")

    def outlet_owners(self, outlet_id: str) -> list[RealtimeClient]:
        return [
            c for c in self._clients.values()
            if c.role == "outlet_owner" and c.outlet_id == outlet_id
        ]

    def user_clients(self, user_id: str) -> list[RealtimeClient]:
        return [c for c in self._clients.values() if c.user_id == user_id]


class WebSocketNotifier(BaseRealtimeNotifier):
    """Pushes events to clients held in a ConnectionRegistry."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        logger.info("WebSocketNotifier initialized")

    @property
    def provider_name(self) -> str:
        return "websocket"

    async def _broadcast(self, clients: list[RealtimeClient], payload: dict[str, Any]) -> NotificationResult:
        delivered = 0
        errors = []

        for client in clients:
            try:
                await client.websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                # A dead socket is dropped; the remaining clients still get the event
                logger.warning(f"Push to {client.client_id} failed: {e}")
                errors.append(str(e))
                self.registry.unregister(client.client_id)

        return NotificationResult(
            success=not errors,
            delivered=delivered,
            error_message="; ".join(errors) or None,
            provider="websocket",
        )

    async def notify_new_order(
        self,
        outlet_id: str,
        order: dict[str, Any],
    ) -> NotificationResult:
        result = await self._broadcast(
            self.registry.outlet_owners(outlet_id),
            {"type": "new_order", "order": order},
        )
        logger.info(f"Notified {result.delivered} outlet owner(s) about new order for outlet {outlet_id}")
        return result

    async def notify_order_status_update(
        self,
        user_id: str,
        order_id: str,
        status: str,
    ) -> NotificationResult:
        result = await self._broadcast(
            self.registry.user_clients(user_id),
            {"type": "order_status_update", "orderId": order_id, "status": status},
        )
        logger.info(f"Notified user {user_id} ({result.delivered} session(s)) about order {order_id} status: {status}")
        return result

    async def health_check(self) -> bool:
        return True
