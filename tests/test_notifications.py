"""Realtime notifiers and the connection registry."""

import pytest

from campus_eats.core.config import get_settings
from campus_eats.services.notifications import (
    ConnectionRegistry,
    MockRealtimeNotifier,
    WebSocketNotifier,
    get_connection_registry,
    get_notifier,
    reset_notifier,
)


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.broken = broken
        self.sent = []

    async def send_json(self, data):
        if self.broken:
            raise RuntimeError("connection closed")
        self.sent.append(data)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


def test_registry_routes_by_outlet_and_user(registry):
    owner = registry.register(FakeSocket(), "owner-1", "outlet_owner", "outlet-1")
    registry.register(FakeSocket(), "owner-2", "outlet_owner", "outlet-2")
    student = registry.register(FakeSocket(), "student-1", "student")

    assert [c.client_id for c in registry.outlet_owners("outlet-1")] == [owner.client_id]
    assert [c.client_id for c in registry.user_clients("student-1")] == [student.client_id]
    assert registry.outlet_owners("outlet-3") == []

    registry.unregister(owner.client_id)
    registry.unregister(owner.client_id)

    assert len(registry) == 2
    assert registry.outlet_owners("outlet-1") == []


def test_students_never_receive_outlet_events(registry):
    registry.register(FakeSocket(), "student-1", "student", "outlet-1")

    assert registry.outlet_owners("outlet-1") == []


async def test_new_order_reaches_every_owner_session(registry):
    phone, laptop = FakeSocket(), FakeSocket()
    registry.register(phone, "owner-1", "outlet_owner", "outlet-1")
    registry.register(laptop, "owner-1", "outlet_owner", "outlet-1")
    notifier = WebSocketNotifier(registry)

    result = await notifier.notify_new_order("outlet-1", {"id": "order-1"})

    assert result.success and result.delivered == 2
    assert phone.sent == [{"type": "new_order", "order": {"id": "order-1"}}]
    assert laptop.sent == phone.sent


async def test_status_update_payload(registry):
    socket = FakeSocket()
    registry.register(socket, "student-1", "student")

    result = await WebSocketNotifier(registry).notify_order_status_update("student-1", "order-1", "ready")

    assert result.delivered == 1
    assert socket.sent == [{"type": "order_status_update", "orderId": "order-1", "status": "ready"}]


async def test_dead_socket_is_dropped(registry):
    alive, dead = FakeSocket(), FakeSocket(broken=True)
    registry.register(alive, "student-1", "student")
    registry.register(dead, "student-1", "student")
    notifier = WebSocketNotifier(registry)

    result = await notifier.notify_order_status_update("student-1", "order-1", "confirmed")

    assert not result.success
    assert result.delivered == 1
    assert "connection closed" in result.error_message
    assert len(registry) == 1

    result = await notifier.notify_order_status_update("student-1", "order-1", "preparing")
    assert result.success and result.delivered == 1


async def test_push_with_nobody_connected(registry):
    result = await WebSocketNotifier(registry).notify_new_order("outlet-1", {"id": "order-1"})

    assert result.success
    assert result.delivered == 0


async def test_mock_notifier_records_and_can_fail():
    recording = MockRealtimeNotifier()
    await recording.notify_order_status_update("student-1", "order-1", "ready")
    assert recording.events == [
        {"type": "order_status_update", "user_id": "student-1", "order_id": "order-1", "status": "ready"}
    ]

    failing = MockRealtimeNotifier(failure_rate=1.0)
    result = await failing.notify_new_order("outlet-1", {"id": "order-1"})
    assert not result.success
    assert failing.events == []


def test_factory_uses_mock_in_development():
    assert get_settings().is_development
    reset_notifier()
    try:
        notifier = get_notifier()
        assert notifier.provider_name == "mock"
        assert get_notifier() is notifier
    finally:
        reset_notifier()


async def test_development_notifier_leaves_sockets_alone():
    socket = FakeSocket()
    registry = get_connection_registry()
    client = registry.register(socket, "student-1", "student")
    reset_notifier()
    try:
        notifier = get_notifier()
        await notifier.notify_order_status_update("student-1", "order-1", "ready")

        assert notifier.provider_name == "mock"
        assert socket.sent == []
    finally:
        registry.unregister(client.client_id)
        reset_notifier()
