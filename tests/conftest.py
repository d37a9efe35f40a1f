"""Shared fixtures: loopback socket pairs and a simulated gateway."""

import socket
from typing import List

import pytest

from gateway_sim import FakeGateway


@pytest.fixture
def fake_gateway():
    """Factory for started FakeGateways, stopped at teardown."""
    gateways: List[FakeGateway] = []

    def _make(**kwargs) -> FakeGateway:
        gateway = FakeGateway(**kwargs).start()
        gateways.append(gateway)
        return gateway

    yield _make

    for gateway in gateways:
        gateway.stop()


@pytest.fixture
def sock_pair():
    """Connected stream socket pair (engine side, peer side)."""
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


@pytest.fixture
def tcp_pair():
    """Connected loopback TCP pair (client side, server side)."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    client = socket.create_connection(server.getsockname())
    accepted, _ = server.accept()
    server.close()
    yield client, accepted
    client.close()
    accepted.close()


@pytest.fixture
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
