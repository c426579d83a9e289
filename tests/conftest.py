from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import pytest

from parse_aggregate.services.bridge import ExecutionBridge
from parse_aggregate.services.executors import DirectExecutor, RemoteExecutor
from parse_aggregate.services.query import Query
from parse_aggregate.services.query_compiler import QueryCompiler
from fakes import FakeMongoClient

UTC = timezone.utc


def song(object_id, title, genre, plays, artist, created_at, tags=None):
    doc = {
        "_id": object_id,
        "title": title,
        "genre": genre,
        "plays": plays,
        "_p_artist": f"Artist${artist}",
        "_created_at": created_at,
        "_updated_at": created_at,
        "_acl": {"*": {"r": True}},
        "_rperm": ["*"],
        "_wperm": [],
    }
    if tags is not None:
        doc["tags"] = tags
    return doc


@pytest.fixture
def song_docs():
    """Song rows as Parse Server stores them in MongoDB."""
    return [
        song("s1", "Alpha", "rock", 10, "a1", datetime(2023, 9, 15, 10, 30, tzinfo=UTC), tags=["live", "remaster"]),
        song("s2", "Beta", "rock", 30, "a2", datetime(2023, 9, 15, 18, 0, tzinfo=UTC), tags=["remaster"]),
        song("s3", "Gamma", "jazz", 5, "a1", datetime(2023, 9, 16, 9, 0, tzinfo=UTC), tags=[]),
        song("s4", "Delta", "pop", 20, "a3", datetime(2023, 10, 1, 12, 0, tzinfo=UTC), tags=["live"]),
        song("s5", "Epsilon", "jazz", 15, "a2", datetime(2024, 1, 2, 0, 0, tzinfo=UTC)),
    ]


@pytest.fixture
def compiler():
    """Fixture to provide a QueryCompiler instance."""
    return QueryCompiler()


@pytest.fixture
def fake_client(song_docs):
    return FakeMongoClient({"Song": song_docs})


@pytest.fixture
def direct_executor(fake_client):
    return DirectExecutor(database="parse", enabled=True, client=fake_client)


@pytest.fixture
def remote_executor():
    """A RemoteExecutor whose transport must never be reached."""
    remote = MagicMock(spec=RemoteExecutor)
    remote.aggregate.side_effect = AssertionError("remote executor should not be used")
    return remote


@pytest.fixture
def bridge(remote_executor, direct_executor):
    return ExecutionBridge(remote=remote_executor, direct=direct_executor)


@pytest.fixture
def songs(bridge, compiler):
    """Factory for fresh Song queries bound to the in-memory store."""
    def make():
        return Query("Song", bridge=bridge, compiler=compiler)
    return make


@pytest.fixture
def recorded_requests():
    return []


@pytest.fixture
def make_remote(recorded_requests):
    """Build a RemoteExecutor backed by httpx.MockTransport."""
    def make(status_code=200, payload=None, **kwargs):
        def handler(request: httpx.Request) -> httpx.Response:
            recorded_requests.append(request)
            body = {"results": []} if payload is None else payload
            return httpx.Response(status_code, json=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        options = {"server_url": "http://parse.test/parse", "application_id": "app-id", "rest_api_key": "rest-key"}
        options.update(kwargs)
        return RemoteExecutor(client=client, **options)
    return make
