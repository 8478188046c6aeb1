import asyncio
import logging
import socket

import pytest
from conftest import FakeConnector, FakeTransport, eventually, is_closed

from webssh.gateway import Gateway
from webssh.models import MessageType


@pytest.fixture
def gateway(connector: FakeConnector) -> Gateway:
    return Gateway(connector=connector)


async def test_transport_then_network_launches_one_bridge(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    assert gateway.register_transport("s1", transport) is None
    task = gateway.register_network("s1", network)

    assert task is not None
    assert gateway.active_sessions == ["s1"]

    transport.disconnect()
    await task

    assert gateway.active_sessions == []
    assert transport.closed.is_set()
    assert is_closed(network)


async def test_network_then_transport_launches_one_bridge(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    assert gateway.register_network("s1", network) is None
    task = gateway.register_transport("s1", transport)

    assert task is not None
    transport.disconnect()
    await task
    assert gateway.bridges == {}


async def test_one_half_never_launches(gateway: Gateway, transport: FakeTransport) -> None:
    assert gateway.register_transport("s1", transport) is None
    await asyncio.sleep(0)

    assert gateway.bridges == {}
    assert not transport.closed.is_set()


async def test_duplicate_endpoints_are_refused_and_closed(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    gateway.register_transport("s1", transport)
    task = gateway.register_network("s1", network)
    late_transport = FakeTransport()
    late_network, peer = socket.socketpair()

    assert gateway.register_transport("s1", late_transport) is None
    assert gateway.register_network("s1", late_network) is None

    await eventually(lambda: late_transport.closed.is_set())
    assert is_closed(late_network)
    assert not transport.closed.is_set()
    assert len(gateway.bridges) == 1

    transport.disconnect()
    await task
    peer.close()


async def test_session_id_is_not_reused_after_teardown(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    gateway.register_transport("s1", transport)
    task = gateway.register_network("s1", network)
    transport.disconnect()
    await task

    again = FakeTransport()
    assert gateway.register_transport("s1", again) is None
    await eventually(lambda: again.closed.is_set())


async def test_failed_session_does_not_affect_others(connector: FakeConnector) -> None:
    gateway = Gateway(connector=connector)
    good, bad = FakeTransport(), FakeTransport()
    good_net, good_peer = socket.socketpair()
    bad_net, bad_peer = socket.socketpair()

    gateway.register_transport("good", good)
    good_task = gateway.register_network("good", good_net)
    gateway.register_transport("bad", bad)
    bad_task = gateway.register_network("bad", bad_net)

    bad.feed(MessageType.PUBLICKEY)
    await bad_task
    assert bad.closed.is_set()

    good.feed(MessageType.LOGIN, b"alice")
    good.feed(MessageType.PASSWORD, b"right")
    await eventually(lambda: connector.session is not None and connector.session.shell_started)
    assert gateway.active_sessions == ["good"]

    good.disconnect()
    await good_task
    good_peer.close()
    bad_peer.close()


async def test_shutdown_tears_down_running_sessions(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    gateway.register_transport("s1", transport)
    task = gateway.register_network("s1", network)
    await asyncio.sleep(0)

    await gateway.shutdown()

    assert task.cancelled()
    assert transport.closed.is_set()
    assert is_closed(network)


async def test_dial_ssh_host_registers_network_half(gateway: Gateway, transport: FakeTransport) -> None:
    listener = socket.create_server(("127.0.0.1", 0))
    host, port = listener.getsockname()

    gateway.register_transport("s1", transport)
    task = await gateway.dial_ssh_host("s1", host, port)

    assert task is not None
    transport.disconnect()
    await task
    listener.close()


async def test_dial_ssh_host_unreachable_raises(gateway: Gateway) -> None:
    listener = socket.create_server(("127.0.0.1", 0))
    host, port = listener.getsockname()
    listener.close()

    with pytest.raises(OSError):
        await gateway.dial_ssh_host("s1", host, port)

    assert "s1" not in gateway.registry


async def test_finished_bridges_are_forgotten(
    gateway: Gateway, transport: FakeTransport, network: socket.socket
) -> None:
    gateway.register_transport("s1", transport)
    task = gateway.register_network("s1", network)
    assert list(gateway.bridges) == ["s1"]

    transport.disconnect()
    await task

    assert gateway.bridges == {}
    assert "s1" in gateway.registry


async def test_registry_warnings_use_gateway_logger(
    connector: FakeConnector,
    transport: FakeTransport,
    network: socket.socket,
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("tenant.webssh")
    gateway = Gateway(connector=connector, logger=logger)
    gateway.register_transport("s1", transport)
    task = gateway.register_network("s1", network)

    late = FakeTransport()
    with caplog.at_level(logging.WARNING, logger="tenant.webssh"):
        gateway.register_transport("s1", late)

    warnings = [r for r in caplog.records if "already started" in r.getMessage()]
    assert [r.name for r in warnings] == ["tenant.webssh"]

    transport.disconnect()
    await task
    await eventually(lambda: late.closed.is_set())
