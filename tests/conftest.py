from __future__ import annotations

import pytest

from gridfantasy.persistence import DocumentStore
from gridfantasy.persistence.batching import BatchWriteCoordinator


@pytest.fixture
def store(tmp_path) -> DocumentStore:
    return DocumentStore(tmp_path / "store.sqlite")


@pytest.fixture
def coordinator(store: DocumentStore) -> BatchWriteCoordinator:
    return BatchWriteCoordinator(store)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
