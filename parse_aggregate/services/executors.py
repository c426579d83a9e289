"""
Pipeline executors.

RemoteExecutor sends the pipeline to the Parse Server REST aggregate endpoint.
DirectExecutor runs it on the MongoDB database behind the server and converts the
stored documents back to their REST shape, so callers see the same rows either way.
"""
from __future__ import annotations
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pymongo import MongoClient

from ..config import Settings
from ..errors import ConfigurationError, DirectExecutionUnavailable, RemoteExecutionError
from ..utils.logger import setup_logger
from .converter import document_to_wire, encode_pipeline

logger = setup_logger(__name__)

_URI_DATABASE_RE = re.compile(r"mongodb(?:\+srv)?://[^/]+/([^?]+)")


def database_from_uri(uri: Optional[str]) -> Optional[str]:
    """Database name from a connection string, e.g. mongodb://host:27017/app?authSource=admin gives app."""
    if not uri:
        return None
    m = _URI_DATABASE_RE.match(uri)
    return m.group(1) if m else None


class RemoteExecutor:
    """Client for the Parse Server `/aggregate/<ClassName>` endpoint."""

    def __init__(
        self,
        server_url: str,
        application_id: str,
        rest_api_key: Optional[str] = None,
        master_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not server_url:
            raise ConfigurationError("Parse server URL is not configured (PARSE_SERVER_URL)")

        self.server_url = server_url.rstrip("/")
        self.headers: Dict[str, str] = {"X-Parse-Application-Id": application_id or ""}
        if rest_api_key:
            self.headers["X-Parse-REST-API-Key"] = rest_api_key
        if master_key:
            self.headers["X-Parse-Master-Key"] = master_key
        self.client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteExecutor":
        return cls(
            server_url=settings.PARSE_SERVER_URL,
            application_id=settings.PARSE_APP_ID,
            rest_api_key=settings.PARSE_REST_API_KEY,
            master_key=settings.PARSE_MASTER_KEY,
            timeout=settings.REQUEST_TIMEOUT,
        )

    def aggregate(self, class_name: str, pipeline: List[Mapping]) -> List[Dict[str, Any]]:
        """Run a wire-form pipeline and return the `results` rows."""
        encoded = encode_pipeline(pipeline, "remote")
        url = f"{self.server_url}/aggregate/{class_name}"
        logger.debug(f"GET {url} with {len(encoded)} stages")

        response = self.client.get(url, params={"pipeline": json.dumps(encoded)}, headers=self.headers)

        if response.status_code >= 400:
            code, message = self._safe_extract_error(response)
            logger.error(f"Aggregate on {class_name} failed with {response.status_code}: {message}")
            raise RemoteExecutionError(response.status_code, code, message)

        data = response.json()
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise RemoteExecutionError(response.status_code, None, "response missing 'results'")
        return results

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @staticmethod
    def _safe_extract_error(response: httpx.Response) -> Tuple[Optional[int], str]:
        try:
            data = response.json()
        except ValueError:
            return None, response.text
        if isinstance(data, dict):
            return data.get("code"), data.get("error") or json.dumps(data)
        return None, response.text


class DirectExecutor:
    """
    Runs pipelines straight against the MongoDB store.

    Disabled unless `enabled` is set explicitly. The client is created on first use
    unless one is injected.
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        enabled: bool = False,
        client: Optional[MongoClient] = None,
    ) -> None:
        self.uri = uri
        self.database = database or database_from_uri(uri)
        self.enabled = enabled
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "DirectExecutor":
        return cls(uri=settings.MONGO_URI, database=settings.MONGO_DB, enabled=settings.MONGO_DIRECT_ENABLED)

    @property
    def is_available(self) -> bool:
        return bool(self.enabled and (self._client is not None or self.uri) and self.database)

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            self._client = MongoClient(self.uri)
        return self._client

    def ensure_available(self) -> None:
        if not self.enabled:
            raise DirectExecutionUnavailable("Direct MongoDB execution is disabled (MONGO_DIRECT_ENABLED)")
        if self._client is None and not self.uri:
            raise DirectExecutionUnavailable("Direct MongoDB execution requires MONGO_URI")
        if not self.database:
            raise DirectExecutionUnavailable("Direct MongoDB execution requires a database (MONGO_DB)")

    def aggregate(self, class_name: str, pipeline: List[Mapping]) -> List[Dict[str, Any]]:
        """Executes a pipeline against MongoDB and returns REST-shaped rows."""
        self.ensure_available()
        encoded = encode_pipeline(pipeline, "storage")
        logger.debug(f"Aggregating {self.database}.{class_name} directly with {len(encoded)} stages")

        try:
            docs = list(self.client[self.database][class_name].aggregate(encoded))
        except Exception as exc:
            logger.error(f"MongoDB aggregation on {class_name} failed: {exc}")
            raise

        return [document_to_wire(doc) for doc in docs]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
