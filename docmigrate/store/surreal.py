"""SurrealDB document store backend.

Collections map to SurrealDB tables. Record keys are generated client-side
and are time-ordered, so ordering by record id gives insertion order.
Datetimes are stored as ISO-8601 strings with fixed microsecond precision
so that string ordering matches chronological ordering.

The store signs in on first use. Local servers (ws://) get a WebSocket
signin; remote ones (wss://) get a token from the HTTP /signin endpoint,
which also works behind TLS-terminating proxies.
"""

import asyncio
import logging
import os
import ssl
import time
from datetime import datetime
from typing import Any, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import requests
import websockets
from surrealdb import AsyncSurreal
from surrealdb.connections.async_ws import AsyncWsSurrealConnection

from ..config import COLLECTION_NAME_PATTERN, SurrealConfig, get_surreal_config
from .base import (
    DESCENDING,
    NATURAL,
    Document,
    DocumentCollection,
    SortSpec,
    Store,
    StoreError,
)

logger = logging.getLogger(__name__)

HTTP_SCHEMES = {"ws": "http", "wss": "https"}


class UnverifiedWsConnection(AsyncWsSurrealConnection):
    """WebSocket client that skips certificate checks on wss:// servers."""

    async def connect(self, url: Optional[str] = None) -> None:
        if self.socket:  # type: ignore[has-type]
            return

        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        self.socket = await websockets.connect(
            self.raw_url,
            max_size=None,
            subprotocols=[websockets.Subprotocol("cbor")],
            ssl=context,
        )
        self.loop = asyncio.get_running_loop()
        self.recv_task = asyncio.create_task(self._recv_task())


def signin_url(url: str) -> str:
    """HTTP signin endpoint of the server behind a ws:// or wss:// URL."""
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    if path.endswith("/rpc"):
        path = path[: -len("/rpc")]
    scheme = HTTP_SCHEMES.get(parts.scheme, parts.scheme)
    return urlunsplit((scheme, parts.netloc, f"{path}/signin", "", ""))


def fetch_token(url: str, config: SurrealConfig) -> str:
    """Sign in over HTTP and return the session token.

    Raises:
        StoreError: If the server rejects the credentials or is unreachable
    """
    try:
        response = requests.post(
            signin_url(url),
            json={"user": config.user, "pass": config.password},
            headers={"Accept": "application/json"},
            timeout=config.connect_timeout,
        )
        response.raise_for_status()
        body = response.json()
    except requests.RequestException as e:
        raise StoreError(f"SurrealDB signin request to {url} failed: {e}") from e

    token = body.get("token") if body.get("code") == 200 else None
    if not token:
        raise StoreError(f"SurrealDB signin to {url} returned no token: {body}")
    return token


def records_of(result: Any) -> list[Document]:
    """Normalize a statement result to a list of records."""
    if result is None:
        return []
    if isinstance(result, dict):
        return [result]
    return list(result)


def new_record_key() -> str:
    """Generate a time-ordered record key."""
    return f"{time.time_ns():020d}{os.urandom(4).hex()}"


def record_key(record_id: Any) -> str:
    """Extract the key part of a SurrealDB record id.

    Accepts RecordID objects as returned by the SDK as well as
    "table:key" strings.
    """
    key = getattr(record_id, "id", None)
    if key is None:
        text = str(record_id)
        key = text.split(":", 1)[1] if ":" in text else text
    return str(key).strip("`⟨⟩")


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat(timespec="microseconds")
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    return value


def _check_identifier(name: str) -> str:
    if not COLLECTION_NAME_PATTERN.match(name):
        raise StoreError(f"Invalid SurrealDB identifier: {name!r}")
    return name


class SurrealCollection(DocumentCollection):
    """A SurrealDB table exposed as a document collection."""

    def __init__(self, store: "SurrealStore", name: str):
        self.store = store
        self.name = _check_identifier(name)

    def _where(self, filter: Optional[Document], params: dict[str, Any]) -> str:
        clauses = []
        for i, (field_name, expected) in enumerate((filter or {}).items()):
            field_name = _check_identifier(field_name)
            negate = isinstance(expected, dict) and "$ne" in expected
            value = expected["$ne"] if negate else expected
            if value is None:
                clauses.append(
                    f"({field_name} != NONE AND {field_name} != NULL)"
                    if negate
                    else f"({field_name} = NONE OR {field_name} = NULL)"
                )
            else:
                params[f"p{i}"] = encode_value(value)
                clauses.append(f"{field_name} {'!=' if negate else '='} $p{i}")
        return f" WHERE {' AND '.join(clauses)}" if clauses else ""

    @staticmethod
    def _order_by(sort: Optional[SortSpec]) -> str:
        if not sort:
            return ""
        parts = []
        for field_name, direction in sort:
            column = "id" if field_name == NATURAL else _check_identifier(field_name)
            parts.append(f"{column} {'DESC' if direction == DESCENDING else 'ASC'}")
        return f" ORDER BY {', '.join(parts)}"

    async def insert_one(self, document: Document) -> str:
        key = new_record_key()
        data = encode_value({k: v for k, v in document.items() if k != "id"})
        await self.store.query(
            "CREATE type::thing($table, $key) CONTENT $data",
            {"table": self.name, "key": key, "data": data},
        )
        return key

    async def find(
        self,
        filter: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        params: dict[str, Any] = {"table": self.name}
        sql = "SELECT * FROM type::table($table)" + self._where(filter, params)
        sql += self._order_by(sort)
        if limit is not None:
            sql += f" LIMIT {int(limit)}"

        records = await self.store.query(sql, params)
        return [{**record, "id": record_key(record["id"])} for record in records if "id" in record]

    async def count(self, filter: Optional[Document] = None) -> int:
        params: dict[str, Any] = {"table": self.name}
        sql = "SELECT count() FROM type::table($table)" + self._where(filter, params) + " GROUP ALL"
        result = await self.store.query(sql, params)
        return int(result[0].get("count", 0)) if result else 0

    async def update_one(self, document_id: Any, fields: Document) -> bool:
        # UPDATE on a record id would create the record if it is gone
        result = await self.store.query(
            "UPDATE type::table($table) MERGE $data WHERE id = type::thing($table, $key)",
            {"table": self.name, "key": record_key(document_id), "data": encode_value(fields)},
        )
        return bool(result)

    async def list_indexes(self) -> list[str]:
        result = await self.store.query(f"INFO FOR TABLE {self.name}")
        if result and isinstance(result[0], dict):
            return list((result[0].get("indexes") or {}).keys())
        return []

    async def create_index(self, name: str, keys: SortSpec) -> None:
        # SurrealDB indexes are not directional
        fields = [_check_identifier(field_name) for field_name, _ in keys if field_name != NATURAL]
        await self.store.query(
            f"DEFINE INDEX IF NOT EXISTS {_check_identifier(name)} "
            f"ON TABLE {self.name} FIELDS {', '.join(fields)}"
        )
        logger.debug(f"Ensured index {name} on {self.name}")


class SurrealStore(Store):
    """Store backed by one SurrealDB namespace/database pair.

    Migration bodies that need raw SurrealQL can call `query` directly.
    """

    def __init__(self, url: str, name: str, config: Optional[SurrealConfig] = None):
        """Initialize the store without connecting.

        Args:
            url: Server URL (ws:// or wss://)
            name: Database to use within the configured namespace
            config: Credentials and timeouts (uses global if not provided)
        """
        self.url = url
        self.name = name
        self.config = config or get_surreal_config()
        self.client: Optional[Union[AsyncSurreal, UnverifiedWsConnection]] = None

    def _new_client(self) -> Union[AsyncSurreal, UnverifiedWsConnection]:
        if self.url.startswith("wss://") and self.config.skip_ssl_verify:
            logger.warning(f"SSL verification disabled for {self.url}")
            return UnverifiedWsConnection(self.url)
        return AsyncSurreal(self.url)

    async def open(self) -> None:
        """Connect, sign in and select the namespace and database.

        Raises:
            StoreError: If any of these steps fails or times out
        """
        if self.client is not None:
            return

        client = self._new_client()
        try:
            await asyncio.wait_for(client.connect(), timeout=self.config.connect_timeout)
            if self.url.startswith("wss://"):
                token = await asyncio.to_thread(fetch_token, self.url, self.config)
                await client.authenticate(token)
            else:
                await client.signin({"username": self.config.user, "password": self.config.password})
            await client.use(self.config.namespace, self.name)
        except StoreError:
            raise
        except asyncio.TimeoutError as e:
            raise StoreError(
                f"Timed out connecting to {self.url} after {self.config.connect_timeout}s"
            ) from e
        except Exception as e:
            raise StoreError(f"Could not open SurrealDB {self.config.namespace}/{self.name}: {e}") from e

        self.client = client
        logger.debug(f"Opened SurrealDB {self.config.namespace}/{self.name}")

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[Document]:
        """Run one SurrealQL statement and return its records.

        Raises:
            StoreError: If the statement fails or times out
        """
        await self.open()
        assert self.client is not None

        try:
            result = await asyncio.wait_for(
                self.client.query(sql, params or {}),
                timeout=self.config.query_timeout,
            )
        except asyncio.TimeoutError as e:
            raise StoreError(f"Query timed out after {self.config.query_timeout}s: {sql}") from e
        except Exception as e:
            raise StoreError(f"Query failed: {e}") from e
        return records_of(result)

    def get_collection(self, name: str) -> SurrealCollection:
        return SurrealCollection(self, name)

    async def close(self) -> None:
        client, self.client = self.client, None
        if client is None:
            return
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"Error closing SurrealDB {self.name}: {e}")
