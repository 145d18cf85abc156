from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Dict, List, Optional, Sequence, Set

import httpx

from .model import DONE, FAILED, CacheEntry, RawListing
from .supabase import SupabaseClient, SupabaseError, in_filter

logger = logging.getLogger(__name__)

CACHE_TABLE = "cached_jobs"


def description_hash(text: str) -> str:
    return hashlib.sha1((text or "").encode("utf-8")).hexdigest()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class EnrichmentCache:
    """Previously enriched jobs, keyed by job_id and validated against the current description.

    Done rows are hits. Failed rows are honoured for ``failed_retry_hours`` so a
    listing the model cannot handle is not re-sent on every search, then retried.
    """

    def __init__(self, supabase: Optional[SupabaseClient], lookup_chunk: int = 100, failed_retry_hours: float = 24.0):
        self._supabase = supabase
        self._lookup_chunk = lookup_chunk
        self._failed_retry = timedelta(hours=failed_retry_hours)

    @property
    def enabled(self) -> bool:
        return self._supabase is not None

    async def lookup(self, listings: Sequence[RawListing], now: Optional[datetime] = None) -> Dict[str, CacheEntry]:
        if self._supabase is None or not listings:
            return {}
        now = now or datetime.now(timezone.utc)
        by_id = {listing.job_id: listing for listing in listings}
        job_ids = list(by_id)
        rows = []
        try:
            for start in range(0, len(job_ids), self._lookup_chunk):
                chunk = job_ids[start : start + self._lookup_chunk]
                rows.extend(
                    await self._supabase.select(
                        CACHE_TABLE,
                        filters={"job_id": in_filter(chunk), "enrichment_status": f"in.({DONE},{FAILED})"},
                    )
                )
        except (httpx.HTTPError, SupabaseError, ValueError) as exc:
            logger.warning("Cache lookup failed, treating all %d jobs as misses (%s)", len(job_ids), exc)
            return {}

        hits: Dict[str, CacheEntry] = {}
        for row in rows:
            try:
                entry = CacheEntry.from_row(row)
            except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as exc:
                logger.warning("Skipping malformed cache row (%s)", exc)
                continue
            listing = by_id.get(entry.job_id)
            if listing is None or entry.enrichment_status not in (DONE, FAILED):
                continue
            if entry.description_hash != description_hash(listing.description_text):
                logger.info("Cache invalidated for %s: description changed", entry.job_id)
                continue
            if entry.enrichment_status == FAILED:
                failed_at = _parse_timestamp(entry.updated_at)
                if failed_at is None or now - failed_at >= self._failed_retry:
                    logger.info("Retrying enrichment for %s after an earlier failure", entry.job_id)
                    continue
            hits[entry.job_id] = entry
        done = sum(1 for entry in hits.values() if entry.enrichment_status == DONE)
        logger.info(
            "Cache hits: %d of %d shortlisted jobs (%d recent failures)", done, len(job_ids), len(hits) - done
        )
        return hits

    async def write(self, entries: Sequence[CacheEntry]) -> None:
        if self._supabase is None or not entries:
            return
        await self._supabase.upsert(CACHE_TABLE, [entry.to_row() for entry in entries], on_conflict="job_id")
        logger.info("Cached %d enrichment results", len(entries))


class WriteBehind:
    """Background work that must never delay or fail the response it follows."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, work: Awaitable[None], label: str) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(work, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, work: Awaitable[None], label: str) -> None:
        try:
            await work
        except Exception as exc:  # noqa: BLE001
            logger.warning("Background %s failed (%s)", label, exc)

    async def drain(self) -> None:
        tasks: List[asyncio.Task] = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks)
