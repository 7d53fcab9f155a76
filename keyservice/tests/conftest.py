"""
Shared fixtures for keyservice tests.
"""
import itertools
from typing import Iterable, List

import pytest

from keyservice.auth.models import Credential
from keyservice.auth.registry import MemoryRegistry, SQLRegistry
from keyservice.config import Settings
from keyservice.main import create_app


class SequenceGenerator:
    """Deterministic generator: the n-th call yields AK000...n / SK000...n."""

    def __init__(self):
        self._counter = itertools.count(1)

    def new_credential(self, name: str) -> Credential:
        n = next(self._counter)
        return Credential(
            name=name,
            access_key_id=f"AK{n:018d}",
            secret_access_key=f"SK{n:038d}",
        )


class ScriptedGenerator:
    """Generator that replays a fixed list of access key ids."""

    def __init__(self, access_key_ids: Iterable[str]):
        self._ids: List[str] = list(access_key_ids)
        self.calls = 0

    def new_credential(self, name: str) -> Credential:
        access_key_id = self._ids[self.calls]
        self.calls += 1
        return Credential(
            name=name,
            access_key_id=access_key_id,
            secret_access_key=f"{access_key_id}{'s' * 20}",
        )


class FailingGenerator:
    """Generator whose randomness source is gone."""

    def new_credential(self, name: str) -> Credential:
        raise OSError("randomness source unavailable")


@pytest.fixture
def generator():
    return SequenceGenerator()


@pytest.fixture
def memory_registry(generator):
    return MemoryRegistry(generator)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'credentials.db'}"


@pytest.fixture
async def sql_registry(database_url, generator):
    registry = SQLRegistry(database_url, generator=generator)
    await registry.init()
    yield registry
    await registry.close()


@pytest.fixture
def app(memory_registry):
    return create_app(Settings(), memory_registry)
