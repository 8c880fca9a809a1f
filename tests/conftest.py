# tests/conftest.py
import pytest

from iod.gate.policy import AllowListPolicy, GateConfig, PolicyStore


@pytest.fixture
def policy():
    """Allow-list used by most tests: the safe namespace plus one exact type."""
    return AllowListPolicy.from_patterns(["iod.safe.*", "datetime.date"])


@pytest.fixture
def config(policy):
    return GateConfig(policy=policy)


@pytest.fixture
def store(config):
    s = PolicyStore()
    s.replace(config)
    return s


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient
    from server import create_app
    return TestClient(create_app(store))
