"""Shared fixtures: an in-memory stand-in for the Motor client."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userservice.config import Settings
from userservice.database import MongoConnector


class FakeCollection:
    def __init__(self) -> None:
        self.documents: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    async def count_documents(self, _filter) -> int:
        self._check()
        return len(self.documents)

    async def insert_one(self, document):
        self._check()
        document.setdefault("_id", ObjectId())
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def find_one(self, _filter=None):
        self._check()
        if not self.documents:
            return None
        return dict(self.documents[0])

    async def update_one(self, _filter, update):
        self._check()
        if not self.documents:
            return SimpleNamespace(matched_count=0, modified_count=0)
        self.documents[0].update(update["$set"])
        return SimpleNamespace(matched_count=1, modified_count=1)


class FakeMongoClient:
    def __init__(self, owner: "FakeMongo", uri: str, options: Dict[str, Any]) -> None:
        self._owner = owner
        self.uri = uri
        self.options = options
        self.closed = False
        self.nodes = frozenset({("localhost", 27017)})
        self.admin = SimpleNamespace(command=self._command)

    async def _command(self, name: str):
        self._owner.commands.append(name)
        if self._owner.failures > 0:
            self._owner.failures -= 1
            raise ServerSelectionTimeoutError("localhost:27017: [Errno 111] Connection refused")
        return {"ok": 1.0}

    def __getitem__(self, database_name: str):
        owner = self._owner

        class _Database:
            def __getitem__(self, collection_name: str) -> FakeCollection:
                owner.accessed.append((database_name, collection_name))
                return owner.collection

        return _Database()

    def close(self) -> None:
        self.closed = True
        self.nodes = frozenset()


class FakeMongo:
    """Client factory handing out fake clients that share one collection."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.collection = FakeCollection()
        self.clients: List[FakeMongoClient] = []
        self.commands: List[str] = []
        self.accessed: List[tuple] = []

    def __call__(self, uri: str, **options: Any) -> FakeMongoClient:
        client = FakeMongoClient(self, uri, options)
        self.clients.append(client)
        return client


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def mongo() -> FakeMongo:
    return FakeMongo()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def connector(settings: Settings, mongo: FakeMongo, sleeper: RecordingSleep) -> MongoConnector:
    return MongoConnector(settings, client_factory=mongo, sleep=sleeper)
