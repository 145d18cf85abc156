from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from itertools import chain
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .cache import EnrichmentCache, WriteBehind, description_hash
from .commute import CommuteAugmenter
from .config import AppConfig
from .enrichment import EnrichmentBatcher, EnrichmentResult
from .llm import GeminiClient
from .model import (
    DONE,
    FAILED,
    PENDING,
    CacheEntry,
    EnrichedAttributes,
    EnrichmentSummary,
    MatchedJob,
    RawListing,
    SearchRequest,
    SearchResponse,
)
from .ranking import apply_filters, deduplicate, rank, shortlist
from .scoring import score_match, visa_likelihood
from .sources import SourceAdapter, build_adapters
from .sponsors import SponsorRegistry, load_registry
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

RegistryLoader = Callable[[], Awaitable[SponsorRegistry]]


class MissingCredentialError(RuntimeError):
    """A credential the search cannot run without is not configured."""


class SearchPipeline:
    """Fetch, deduplicate, enrich, match, and rank jobs for one search request."""

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient,
        *,
        adapters: Optional[List[SourceAdapter]] = None,
        write_behind: Optional[WriteBehind] = None,
        registry_loader: Optional[RegistryLoader] = None,
    ):
        self.config = config
        self.adapters = adapters if adapters is not None else build_adapters(client, config)
        self.write_behind = write_behind or WriteBehind()
        supabase = SupabaseClient(client, config.supabase) if config.supabase.enabled else None
        self.cache = EnrichmentCache(
            supabase, config.settings.cache_lookup_chunk, config.settings.failed_retry_hours
        )
        self.gemini = (
            GeminiClient(client, config.gemini_api_key, config.gemini_model) if config.gemini_api_key else None
        )
        self.batcher = EnrichmentBatcher(self.gemini, config.settings) if self.gemini else None
        self.commute = CommuteAugmenter(
            client, config.google_maps_api_key, config.country_name, config.settings.commute_batch_size
        )
        self._load_registry = registry_loader or (lambda: load_registry(config, client, supabase))

    async def search(self, request: SearchRequest, today: Optional[date] = None) -> SearchResponse:
        if self.batcher is None:
            raise MissingCredentialError("GOOGLE_GEMINI_API_KEY not configured")

        fetched = await self._fetch_sources(request)
        sources = {name: len(listings) for name, listings in fetched.items()}
        all_jobs = deduplicate(chain.from_iterable(fetched.values()))
        logger.info("Fetched %d listings, %d after dedup", sum(sources.values()), len(all_jobs))
        if not all_jobs:
            return SearchResponse(jobs=[], sources=sources)

        shortlisted, _ = shortlist(all_jobs, request, self.config.settings, today)
        cached = await self.cache.lookup(shortlisted)
        misses = [listing for listing in shortlisted if listing.job_id not in cached]

        registry, enrichment = await asyncio.gather(self._load_registry(), self.batcher.enrich(misses))

        matched = [self._assemble(listing, cached, enrichment, registry, request) for listing in all_jobs]
        summary = self._summarize(matched, cached, enrichment)

        results = rank(apply_filters(matched, request), request.top_n)
        await self.commute.augment(results, request.commute_origin, request.commute_mode)

        response = SearchResponse(jobs=results, sources=sources, enrichment_summary=summary)
        entries = self._cache_entries(shortlisted, enrichment)
        if entries and self.cache.enabled:
            self.write_behind.submit(self.cache.write(entries), "cache write")
        return response

    def _selected_adapters(self, request: SearchRequest) -> List[SourceAdapter]:
        if request.data_source_filter == "all":
            return list(self.adapters)
        return [adapter for adapter in self.adapters if adapter.data_source_type == request.data_source_filter]

    async def _fetch_sources(self, request: SearchRequest) -> Dict[str, List[RawListing]]:
        fetched: Dict[str, List[RawListing]] = {adapter.name: [] for adapter in self.adapters}
        selected = self._selected_adapters(request)
        results = await asyncio.gather(*(adapter.fetch(request) for adapter in selected), return_exceptions=True)
        for adapter, result in zip(selected, results):
            if isinstance(result, BaseException):
                logger.warning("Source %s raised unexpectedly (%s)", adapter.name, result)
                continue
            fetched[adapter.name] = result
        return fetched

    def _assemble(
        self,
        listing: RawListing,
        cached: Dict[str, CacheEntry],
        enrichment: EnrichmentResult,
        registry: SponsorRegistry,
        request: SearchRequest,
    ) -> MatchedJob:
        job_id = listing.job_id
        if job_id in cached and cached[job_id].enrichment_status == DONE:
            attributes, status = cached[job_id].attributes, DONE
        elif job_id in cached:
            attributes, status = EnrichedAttributes(), FAILED
        elif job_id in enrichment.attributes:
            attributes, status = enrichment.attributes[job_id], DONE
        elif job_id in enrichment.failed:
            attributes, status = EnrichedAttributes(), FAILED
        else:
            attributes, status = EnrichedAttributes(), PENDING

        sponsor = registry.match(listing.company_name)
        match = score_match(attributes, request.candidate_profile, self.config.weights, request.strict_mode)
        return MatchedJob(
            listing=listing,
            attributes=attributes,
            enrichment_status=status,
            sponsor=sponsor,
            visa_likelihood=visa_likelihood(
                sponsor.matched, attributes.visa_sponsorship_mentioned, attributes.required_languages
            ),
            match_score_overall=match.overall,
            match_score_breakdown=match.breakdown,
            matched_skills=match.matched_skills,
            missing_skills=match.missing_skills,
        )

    @staticmethod
    def _summarize(
        jobs: Sequence[MatchedJob], cached: Dict[str, CacheEntry], enrichment: EnrichmentResult
    ) -> EnrichmentSummary:
        summary = EnrichmentSummary(total=len(jobs))
        for job in jobs:
            if job.enrichment_status == DONE and job.job_id in cached:
                summary.cached += 1
            elif job.enrichment_status == DONE:
                summary.enriched += 1
            elif job.enrichment_status == FAILED:
                summary.failed += 1
            else:
                summary.pending += 1
        return summary

    @staticmethod
    def _cache_entries(shortlisted: Sequence[RawListing], enrichment: EnrichmentResult) -> List[CacheEntry]:
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        entries: List[CacheEntry] = []
        for listing in shortlisted:
            job_id = listing.job_id
            if job_id in enrichment.attributes:
                entries.append(
                    CacheEntry(
                        job_id=job_id,
                        description_hash=description_hash(listing.description_text),
                        enrichment_status=DONE,
                        attributes=enrichment.attributes[job_id],
                        updated_at=now,
                        listing=listing,
                    )
                )
            elif job_id in enrichment.failed:
                entries.append(
                    CacheEntry(
                        job_id=job_id,
                        description_hash=description_hash(listing.description_text),
                        enrichment_status=FAILED,
                        enrichment_error=enrichment.failed[job_id],
                        updated_at=now,
                        listing=listing,
                    )
                )
        return entries
