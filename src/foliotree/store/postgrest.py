"""PostgREST adapter - content tree rows over a hosted Postgres REST API.

Each call opens a short-lived ``httpx.AsyncClient`` against
``{url}/rest/v1/{table}``. Non-2xx responses and transport failures
become ``StoreError``; the response text is kept in the exception for
logs only.

The adapter reads and writes ``is_published`` and ``meta`` besides the
base tree columns; ``supabase/migrations/`` adds them to an existing
``content_nodes`` table.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from foliotree.graph.ContentNode import ContentNode
from foliotree.graph.errors import StoreError
from foliotree.graph.serialize import fields_to_row, node_from_row, node_to_row
from foliotree.store.base import NodeFilter
from foliotree.utilities.timestamps import format_timestamp, utcnow

logger = logging.getLogger(__name__)

LIST_ORDER = "parent_id.asc.nullsfirst,order_index.asc,title.asc,id.asc"


class PostgrestNodeStore:
    """NodeStore backed by a PostgREST ``content_nodes`` table.

    Args:
        url: Base URL of the service (without ``/rest/v1``).
        key: Service key, sent as ``apikey`` and bearer token.
        table: Table name.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests to mock the service.
    """

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "content_nodes",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("PostgREST store needs a base URL")
        self._base_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self._key = key
        self._timeout = timeout
        self._transport = transport

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s params=%s", method, self._base_url, dict(params or {}))
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    self._base_url,
                    params=params,
                    json=json_body,
                    headers=self._headers(prefer),
                )
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {self._base_url} failed: {e}") from e
        return self._handle_response(response)

    @staticmethod
    def _handle_response(response: httpx.Response) -> httpx.Response:
        if response.is_success:
            return response
        raise StoreError(
            f"Store responded {response.status_code}: {response.text[:500]}",
            status=response.status_code,
        )

    @staticmethod
    def _rows(response: httpx.Response) -> list[ContentNode]:
        if not response.content:
            return []
        try:
            data = response.json()
            if isinstance(data, Mapping):
                data = [data]
            return [node_from_row(row) for row in data]
        except (ValueError, TypeError) as e:
            raise StoreError(f"Malformed rows from store: {e}") from e

    async def list_nodes(self, node_filter: NodeFilter | None = None) -> list[ContentNode]:
        params: dict[str, str] = {"select": "*", "order": LIST_ORDER}
        if node_filter is not None:
            if node_filter.by_parent:
                params["parent_id"] = (
                    "is.null" if node_filter.parent_id is None else f"eq.{node_filter.parent_id}"
                )
            if node_filter.published_only:
                params["is_published"] = "eq.true"
            if node_filter.ref_id is not None:
                params["ref_id"] = f"eq.{node_filter.ref_id}"
        return self._rows(await self._request("GET", params=params))

    async def get_node(self, node_id: str) -> ContentNode | None:
        response = await self._request("GET", params={"select": "*", "id": f"eq.{node_id}"})
        rows = self._rows(response)
        return rows[0] if rows else None

    async def insert_node(self, fields: Mapping[str, Any]) -> ContentNode:
        response = await self._request(
            "POST", json_body=fields_to_row(fields), prefer="return=representation"
        )
        rows = self._rows(response)
        if not rows:
            raise StoreError("Insert returned no row")
        return rows[0]

    async def update_node(self, node_id: str, fields: Mapping[str, Any]) -> ContentNode | None:
        body = fields_to_row(fields)
        body.setdefault("updated_at", format_timestamp(utcnow()))
        response = await self._request(
            "PATCH",
            params={"id": f"eq.{node_id}"},
            json_body=body,
            prefer="return=representation",
        )
        rows = self._rows(response)
        return rows[0] if rows else None

    async def delete_node(self, node_id: str) -> bool:
        response = await self._request(
            "DELETE", params={"id": f"eq.{node_id}"}, prefer="return=representation"
        )
        return bool(self._rows(response))

    async def count_children(self, node_id: str) -> int:
        response = await self._request(
            "HEAD",
            params={"select": "id", "parent_id": f"eq.{node_id}"},
            prefer="count=exact",
        )
        # Content-Range: 0-4/5 or */0
        content_range = response.headers.get("Content-Range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError as e:
            raise StoreError(f"Unexpected Content-Range {content_range!r}") from e

    async def replace_nodes(self, nodes: Sequence[ContentNode]) -> list[ContentNode]:
        if not nodes:
            return []
        now = utcnow()
        body = [node_to_row(node.evolve(updated_at=node.updated_at or now)) for node in nodes]
        # One upsert statement; PostgREST runs it in a single transaction
        response = await self._request(
            "POST",
            params={"on_conflict": "id"},
            json_body=body,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._rows(response)
