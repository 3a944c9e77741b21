# Copyright (c) 2026 Tenancy Contributors. All Rights Reserved.

"""
Document Store — The narrow CRUD + query + batch interface the core consumes.

StoreClient is the abstract seam; RedisDocumentStore implements it on Redis:
  - each document is a JSON string at  tenancy:doc:{path}
  - each collection keeps a SET of its document ids at  tenancy:col:{collection}
  - batch_write runs in one MULTI/EXEC; documents it must read first
    (update, merge) are WATCHed so the whole batch is all-or-nothing.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import (
    AuthenticationError,
    ConnectionError,
    NoPermissionError,
    RedisError,
    TimeoutError,
    WatchError,
)

from tenancy.core.errors import NotFoundError, StorePermissionError, TransientStoreError
from tenancy.kernel.namespace import collection_key, doc_key, split_path

logger = logging.getLogger("tenancy.store")

_WRITE_OPS = ("set", "update", "delete")


@dataclass
class Document:
    """A snapshot of one stored document."""

    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return split_path(self.path)[1]

    @property
    def collection(self) -> str:
        return split_path(self.path)[0]


@dataclass
class WriteOp:
    """One mutation inside a batch: set | update | delete."""

    op: str
    path: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False

    def __post_init__(self):
        if self.op not in _WRITE_OPS:
            raise ValueError(f"Unknown write op {self.op!r}, expected one of {_WRITE_OPS}")
        if self.op != "delete" and self.data is None:
            raise ValueError(f"{self.op} on {self.path} requires data")
        split_path(self.path)

    @property
    def needs_read(self) -> bool:
        return self.op == "update" or (self.op == "set" and self.merge)

    @classmethod
    def set(cls, path: str, data: Dict[str, Any], merge: bool = False) -> WriteOp:
        return cls("set", path, data, merge)

    @classmethod
    def update(cls, path: str, data: Dict[str, Any]) -> WriteOp:
        return cls("update", path, data)

    @classmethod
    def delete(cls, path: str) -> WriteOp:
        return cls("delete", path)


class StoreClient(ABC):
    """Minimal async document store used by the tenancy core."""

    @abstractmethod
    async def get_document(self, path: str) -> Optional[Document]:
        """Return the document, or None if it does not exist."""

    @abstractmethod
    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ...

    @abstractmethod
    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        """Shallow-merge into an existing document. Raises NotFoundError if absent."""

    @abstractmethod
    async def delete_document(self, path: str) -> None:
        ...

    @abstractmethod
    async def query_collection(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        """Documents of a collection matching every equality filter, ordered by id."""

    @abstractmethod
    async def batch_write(self, ops: Iterable[WriteOp]) -> None:
        """Apply all mutations atomically or none of them."""

    def allocate_id(self) -> str:
        """Store-assigned opaque document id."""
        return uuid.uuid4().hex


@contextmanager
def translate_store_errors(action: str) -> Iterator[None]:
    """Map Redis client failures onto the tenancy error taxonomy."""
    try:
        yield
    except WatchError:
        raise
    except (NoPermissionError, AuthenticationError) as exc:
        raise StorePermissionError(
            f"Store rejected {action}: {exc}", details={"action": action},
        ) from exc
    except (ConnectionError, TimeoutError, OSError) as exc:
        raise TransientStoreError(
            f"Store unavailable during {action}: {exc}", details={"action": action},
        ) from exc
    except RedisError as exc:
        # OOM, READONLY replica after failover, and other server-side rejections
        raise TransientStoreError(
            f"Store rejected {action}: {exc}", details={"action": action},
        ) from exc


def _decode(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    return json.loads(raw)


def _encode(data: Dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


def _matches(data: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(field_ in data and data[field_] == value for field_, value in filters.items())


class RedisDocumentStore(StoreClient):
    """StoreClient backed by a single Redis database."""

    def __init__(self, redis: aioredis.Redis, max_batch_retries: int = 3) -> None:
        self._redis = redis
        self._max_batch_retries = max_batch_retries

    # ── Reads ───────────────────────────────────────────────────

    async def get_document(self, path: str) -> Optional[Document]:
        with translate_store_errors(f"read {path}"):
            raw = await self._redis.get(doc_key(path))
        data = _decode(raw)
        if data is None:
            return None
        return Document(path=path.strip("/"), data=data)

    async def query_collection(
        self,
        collection: str,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Document]:
        collection = collection.strip("/")
        with translate_store_errors(f"query {collection}"):
            ids = sorted(await self._redis.smembers(collection_key(collection)))
            if not ids:
                return []
            raws = await self._redis.mget([doc_key(f"{collection}/{i}") for i in ids])

        docs = []
        for doc_id, raw in zip(ids, raws):
            data = _decode(raw)
            if data is None:
                # Index entry outlived its document; ignore it.
                continue
            if filters and not _matches(data, filters):
                continue
            docs.append(Document(path=f"{collection}/{doc_id}", data=data))
        return docs

    # ── Single-document writes ──────────────────────────────────

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self.batch_write([WriteOp.set(path, data, merge=merge)])

    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        await self.batch_write([WriteOp.update(path, data)])

    async def delete_document(self, path: str) -> None:
        await self.batch_write([WriteOp.delete(path)])

    # ── Batch ───────────────────────────────────────────────────

    async def batch_write(self, ops: Iterable[WriteOp]) -> None:
        ops = list(ops)
        if not ops:
            return
        watched = sorted({doc_key(op.path) for op in ops if op.needs_read})

        for attempt in range(1, self._max_batch_retries + 1):
            try:
                with translate_store_errors(f"batch of {len(ops)} writes"):
                    await self._apply(ops, watched)
                return
            except WatchError:
                logger.info(
                    "Batch write conflicted on %d watched keys (attempt %d/%d)",
                    len(watched), attempt, self._max_batch_retries,
                )
        raise TransientStoreError(
            "Batch write kept conflicting with concurrent writers",
            details={"ops": len(ops), "attempts": self._max_batch_retries},
        )

    async def _apply(self, ops: List[WriteOp], watched: List[str]) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            staged: Dict[str, Optional[Dict[str, Any]]] = {}
            if watched:
                await pipe.watch(*watched)
                values = await pipe.mget(watched)
                staged = {key: _decode(raw) for key, raw in zip(watched, values)}

            pipe.multi()
            for op in ops:
                self._stage(pipe, op, staged)
            await pipe.execute()

    @staticmethod
    def _stage(pipe, op: WriteOp, staged: Dict[str, Optional[Dict[str, Any]]]) -> None:
        key = doc_key(op.path)
        collection, doc_id = split_path(op.path)
        index = collection_key(collection)

        if op.op == "delete":
            pipe.delete(key)
            pipe.srem(index, doc_id)
            staged[key] = None
            return

        current = staged.get(key)
        if op.op == "update":
            if current is None:
                raise NotFoundError(
                    f"Document {op.path} does not exist",
                    details={"path": op.path},
                )
            new = {**current, **op.data}
        elif op.merge and current is not None:
            new = {**current, **op.data}
        else:
            new = dict(op.data)

        pipe.set(key, _encode(new))
        pipe.sadd(index, doc_id)
        staged[key] = new
