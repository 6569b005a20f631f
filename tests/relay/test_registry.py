"""Connection registry role bookkeeping."""

import pytest

from services.connection import ConnectionRole


async def test_single_device_slot(registry, connection_factory):
    first, second = connection_factory(), connection_factory()

    assert await registry.register(first, ConnectionRole.DEVICE) is None
    displaced = await registry.register(second, ConnectionRole.DEVICE)

    assert displaced is first
    assert registry.current_device() is second
    # the displaced socket is left alone
    assert first.is_open


async def test_reregistering_same_device_displaces_nothing(registry, connection_factory):
    device = connection_factory()
    await registry.register(device, ConnectionRole.DEVICE)

    assert await registry.register(device, ConnectionRole.DEVICE) is None
    assert registry.current_device() is device


async def test_observers_have_set_semantics(registry, connection_factory):
    observer = connection_factory()

    await registry.register(observer, ConnectionRole.OBSERVER)
    await registry.register(observer, ConnectionRole.OBSERVER)

    assert registry.observers() == [observer]
    assert registry.observer_count == 1
    assert observer.role == ConnectionRole.OBSERVER


async def test_unregister_reports_active_device_only(registry, connection_factory):
    old, new, observer = connection_factory(), connection_factory(), connection_factory()
    await registry.register(old, ConnectionRole.DEVICE)
    await registry.register(new, ConnectionRole.DEVICE)
    await registry.register(observer, ConnectionRole.OBSERVER)

    assert await registry.unregister(old) is False
    assert registry.current_device() is new
    assert await registry.unregister(observer) is False
    assert registry.observer_count == 0
    assert await registry.unregister(new) is True
    assert registry.current_device() is None


async def test_unregister_non_member_is_noop(registry, connection_factory):
    assert await registry.unregister(connection_factory()) is False


async def test_observer_snapshot_is_stable(registry, connection_factory):
    a, b = connection_factory(), connection_factory()
    await registry.register(a, ConnectionRole.OBSERVER)
    await registry.register(b, ConnectionRole.OBSERVER)

    snapshot = registry.observers()
    await registry.unregister(a)

    assert len(snapshot) == 2
    assert registry.observers() == [b]


async def test_device_connected_tracks_transport(registry, connection_factory):
    device = connection_factory()
    assert registry.device_connected is False

    await registry.register(device, ConnectionRole.DEVICE)
    assert registry.device_connected is True

    device.websocket.drop()
    assert registry.device_connected is False


async def test_cannot_register_as_unregistered(registry, connection_factory):
    with pytest.raises(ValueError):
        await registry.register(connection_factory(), ConnectionRole.UNREGISTERED)
