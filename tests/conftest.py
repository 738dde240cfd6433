import pytest

from tests.helpers import InMemoryAdapter


@pytest.fixture(autouse=True)
def reset_memory_adapter():
    InMemoryAdapter.connect_calls = 0
    InMemoryAdapter.connect_delay_s = 0.0
    InMemoryAdapter.fail_connects = 0
    yield


@pytest.fixture
def memory_engine(monkeypatch):
    import adapters.factory as factory

    monkeypatch.setitem(factory._REGISTRY, "memory", InMemoryAdapter)
    return InMemoryAdapter
