"""
Pytest configuration and fixtures for snail_client tests.
"""

import pytest

from fakes import FakeInterpreter, PairConnector, RecordingBusy, RecordingViewer
from snail_client.client import ReplClient
from snail_client.config import ClientConfig
from snail_client.tempfiles import TempFileStore


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: test talks to a fake interpreter over a real socket"
    )


@pytest.fixture
def busy():
    return RecordingBusy()


@pytest.fixture
def viewer():
    return RecordingViewer()


@pytest.fixture
def make_client(tmp_path):
    """Factory for connected clients backed by socketpairs."""
    created = []

    def factory(config=None, **options):
        connector = PairConnector()
        options.setdefault("tempfiles", TempFileStore(tmp_path))
        client = ReplClient(
            "test",
            config or ClientConfig(poll_interval=0.01, sync_timeout=2.0),
            connector=connector,
            **options,
        )
        client.connect()
        created.append((client, connector))
        return client, connector

    yield factory
    for client, connector in created:
        client.close()
        connector.close()


@pytest.fixture
def fake_interpreter():
    servers = []

    def factory(handler):
        server = FakeInterpreter(handler).start()
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()
