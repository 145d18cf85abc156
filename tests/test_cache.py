import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import make_listing, mock_client
from visa_search.cache import EnrichmentCache, WriteBehind, description_hash
from visa_search.config import SupabaseConfig
from visa_search.model import DONE, FAILED, CacheEntry, EnrichedAttributes
from visa_search.supabase import SupabaseClient, in_filter

SUPABASE = SupabaseConfig("https://db.example.co", "service-key")
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _row(listing, **overrides):
    row = {
        "job_id": listing.job_id,
        "job_description_hash": description_hash(listing.description_text),
        "enrichment_status": DONE,
        "company_name": listing.company_name,
        "job_title": listing.title,
        "source": listing.source,
        "hard_skills": ["Python", "SQL"],
        "work_mode": "Hybrid",
        "visa_sponsorship_mentioned": "yes",
    }
    row.update(overrides)
    return row


async def _lookup(rows, listings, **cache_options):
    async with mock_client(lambda request: httpx.Response(200, json=rows)) as client:
        cache = EnrichmentCache(SupabaseClient(client, SUPABASE), **cache_options)
        return await cache.lookup(listings, now=NOW)


def test_description_hash_is_stable_sha1():
    assert description_hash("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"
    assert description_hash("") == description_hash(None)


def test_in_filter_quotes_values():
    assert in_filter(["gh-1", 'odd"id']) == 'in.("gh-1","odd\\"id")'


@pytest.mark.asyncio
async def test_lookup_returns_hits_with_matching_hash():
    fresh = make_listing(source_job_id="1")
    edited = make_listing(source_job_id="2", description_text="A rewritten description " * 10)
    rows = [_row(fresh), _row(edited, job_description_hash=description_hash("the old text"))]
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=rows)

    async with mock_client(handler) as client:
        cache = EnrichmentCache(SupabaseClient(client, SUPABASE))
        hits = await cache.lookup([fresh, edited])

    assert list(hits) == ["gh-1"]
    assert hits["gh-1"].attributes.hard_skills == ["Python", "SQL"]
    assert hits["gh-1"].attributes.work_mode == "Hybrid"
    params = requests[0].url.params
    assert params["job_id"] == 'in.("gh-1","gh-2")'
    assert params["enrichment_status"] == "in.(done,failed)"
    assert requests[0].headers["apikey"] == "service-key"


@pytest.mark.asyncio
async def test_lookup_chunks_large_shortlists():
    listings = [make_listing(source_job_id=str(i)) for i in range(5)]
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["job_id"])
        return httpx.Response(200, json=[])

    async with mock_client(handler) as client:
        cache = EnrichmentCache(SupabaseClient(client, SUPABASE), lookup_chunk=2)
        assert await cache.lookup(listings) == {}
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_malformed_rows_are_skipped(caplog):
    good = make_listing(source_job_id="1")
    rows = [{"job_description_hash": "x"}, {"job_id": 42, "job_description_hash": "x"}, _row(good)]

    with caplog.at_level(logging.WARNING):
        hits = await _lookup(rows, [good])

    assert list(hits) == ["gh-1"]
    assert caplog.text.count("Skipping malformed cache row") == 2


@pytest.mark.asyncio
async def test_out_of_range_numbers_do_not_break_lookup():
    first = make_listing(source_job_id="1")
    second = make_listing(source_job_id="2")
    rows = [_row(first, years_experience_min="1e999"), _row(second, salary_max="Infinity")]

    hits = await _lookup(rows, [first, second])

    assert sorted(hits) == ["gh-1", "gh-2"]
    assert hits["gh-1"].attributes.years_experience_min is None
    assert hits["gh-2"].attributes.salary_max is None


@pytest.mark.asyncio
async def test_recent_failure_is_a_hit_until_the_retry_window_passes():
    recent = make_listing(source_job_id="1")
    stale = make_listing(source_job_id="2")
    undated = make_listing(source_job_id="3")
    rows = [
        _row(recent, enrichment_status=FAILED, enrichment_status_updated_at=(NOW - timedelta(hours=2)).isoformat()),
        _row(stale, enrichment_status=FAILED, enrichment_status_updated_at="2026-10-17T08:00:00Z"),
        _row(undated, enrichment_status=FAILED),
    ]

    hits = await _lookup(rows, [recent, stale, undated], failed_retry_hours=24)

    assert list(hits) == ["gh-1"]
    assert hits["gh-1"].enrichment_status == FAILED


@pytest.mark.asyncio
async def test_failure_with_changed_description_is_invalidated():
    listing = make_listing()
    row = _row(
        listing,
        enrichment_status=FAILED,
        job_description_hash=description_hash("the old text"),
        enrichment_status_updated_at=NOW.isoformat(),
    )
    assert await _lookup([row], [listing]) == {}


@pytest.mark.asyncio
async def test_store_failure_means_every_job_misses():
    async with mock_client(lambda request: httpx.Response(500)) as client:
        cache = EnrichmentCache(SupabaseClient(client, SUPABASE))
        assert await cache.lookup([make_listing()]) == {}


@pytest.mark.asyncio
async def test_disabled_cache_does_nothing():
    cache = EnrichmentCache(None)
    assert not cache.enabled
    assert await cache.lookup([make_listing()]) == {}
    await cache.write([CacheEntry("gh-1", "hash", DONE)])


@pytest.mark.asyncio
async def test_write_upserts_rows_on_job_id():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(201)

    first = make_listing(source_job_id="1", salary_min=60000)
    second = make_listing(source_job_id="2")
    entries = [
        CacheEntry(
            "gh-1",
            "h1",
            DONE,
            EnrichedAttributes(hard_skills=["Python"]),
            updated_at="2026-10-19T10:00:00+00:00",
            listing=first,
        ),
        CacheEntry("gh-2", "h2", FAILED, enrichment_error="timeout", listing=second),
    ]
    async with mock_client(handler) as client:
        await EnrichmentCache(SupabaseClient(client, SUPABASE)).write(entries)

    request = captured["request"]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/cached_jobs"
    assert request.url.params["on_conflict"] == "job_id"
    assert "merge-duplicates" in request.headers["prefer"]
    body = json.loads(request.content)
    assert set(body[0]) == set(body[1])
    assert body[0]["job_description_hash"] == "h1"
    assert "description_hash" not in body[0]
    assert body[0]["hard_skills"] == ["Python"]
    assert body[0]["salary_min"] == 60000
    assert body[0]["enrichment_status_updated_at"] == "2026-10-19T10:00:00+00:00"
    assert body[0]["enriched_at"] == "2026-10-19T10:00:00+00:00"
    assert (body[0]["company_name"], body[0]["job_title"], body[0]["source"]) == (
        first.company_name,
        first.title,
        "greenhouse",
    )
    assert body[0]["job_description_raw"] == first.description_text
    assert body[1]["enrichment_status"] == "failed"
    assert body[1]["enrichment_error"] == "timeout"
    assert body[1]["enriched_at"] is None


def test_cache_row_round_trip_keeps_attributes():
    entry = CacheEntry(
        "lv-abc", "h", DONE, EnrichedAttributes(hard_skills=["Go"], years_experience_min=3), listing=make_listing()
    )
    restored = CacheEntry.from_row(entry.to_row())
    assert restored.description_hash == "h"
    assert restored.attributes.hard_skills == ["Go"]
    assert restored.attributes.years_experience_min == 3


@pytest.mark.asyncio
async def test_write_behind_logs_and_swallows_failures(caplog):
    async def broken():
        raise RuntimeError("store offline")

    done = []

    async def ok():
        await asyncio.sleep(0)
        done.append(True)

    write_behind = WriteBehind()
    with caplog.at_level(logging.WARNING):
        write_behind.submit(broken(), "cache write")
        write_behind.submit(ok(), "cache write")
        assert write_behind.pending == 2
        await write_behind.drain()

    assert done == [True]
    assert write_behind.pending == 0
    assert "Background cache write failed (store offline)" in caplog.text
