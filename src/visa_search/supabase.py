from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .config import SupabaseConfig

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Raised when the REST endpoint answers with something other than rows."""


def in_filter(values: Iterable[str]) -> str:
    quoted = []
    for value in values:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return f"in.({','.join(quoted)})"


class SupabaseClient:
    """Thin PostgREST wrapper: paginated selects and upserts keyed by a conflict column."""

    def __init__(self, client: httpx.AsyncClient, config: SupabaseConfig):
        self._client = client
        self._base_url = (config.url or "").rstrip("/") + "/rest/v1"
        self._key = config.service_key or ""

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
        }
        headers.update(extra)
        return headers

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["offset"] = str(offset or 0)
            params["limit"] = str(limit)
        response = await self._client.get(f"{self._base_url}/{table}", params=params, headers=self._headers())
        response.raise_for_status()
        rows = response.json()
        if not isinstance(rows, list):
            raise SupabaseError(f"Unexpected payload from {table}: {type(rows).__name__}")
        return rows

    async def select_all(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
        page_size: int = 1000,
        order: str = "id.asc",
    ) -> List[Dict[str, Any]]:
        """Page through a whole table; a stable order keeps offsets from skipping or repeating rows."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.select(table, columns, filters, offset=offset, limit=page_size, order=order)
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        logger.debug("Read %d rows from %s", len(rows), table)
        return rows

    async def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> None:
        if not rows:
            return
        response = await self._client.post(
            f"{self._base_url}/{table}",
            params={"on_conflict": on_conflict},
            json=rows,
            headers=self._headers(Prefer="resolution=merge-duplicates,return=minimal"),
        )
        response.raise_for_status()
