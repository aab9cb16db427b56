"""Split large write sets into batches below the store's operation ceiling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Literal, Mapping, Sequence, TypeVar

from . import MAX_BATCH_OPERATIONS, DocumentRef, DocumentStore


logger = logging.getLogger(__name__)

T = TypeVar("T")

WriteKind = Literal["update", "set", "create"]


@dataclass(frozen=True)
class WriteOp:
    ref: DocumentRef
    data: Mapping[str, Any]
    kind: WriteKind = "update"


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` holding at most ``size`` entries."""

    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchWriteCoordinator:
    """Commit an arbitrary number of writes as sequential atomic chunks.

    Each chunk is committed and awaited before the next one starts. A failure
    leaves earlier chunks applied.
    """

    def __init__(self, store: DocumentStore, *, limit: int = MAX_BATCH_OPERATIONS - 1):
        if limit < 1 or limit > MAX_BATCH_OPERATIONS:
            raise ValueError(f"limit must be between 1 and {MAX_BATCH_OPERATIONS}")
        self.store = store
        self.limit = limit

    def commit(self, ops: Sequence[WriteOp], *, label: str = "writes") -> int:
        """Commit ``ops`` and return the number of batches used."""

        ops_list: List[WriteOp] = list(ops)
        batches = 0
        for chunk in chunked(ops_list, self.limit):
            batch = self.store.batch(max_operations=self.limit)
            for op in chunk:
                if op.kind == "set":
                    batch.set(op.ref, op.data)
                elif op.kind == "create":
                    batch.create(op.ref, op.data)
                else:
                    batch.update(op.ref, op.data)
            batch.commit()
            batches += 1
        if ops_list:
            logger.debug("Committed %s %s in %s batch(es)", len(ops_list), label, batches)
        return batches
