from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import httpx

from .config import PipelineSettings
from .llm import GeminiClient, GeminiError
from .model import EnrichedAttributes, RawListing

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EnrichmentResult:
    attributes: Dict[str, EnrichedAttributes] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


class EnrichmentBatcher:
    """Sends cache misses to the model in fixed-size batches behind a concurrency gate."""

    def __init__(self, gemini: GeminiClient, settings: PipelineSettings):
        self._gemini = gemini
        self._settings = settings

    def split_eligible(self, listings: Sequence[RawListing]) -> Tuple[List[RawListing], List[str]]:
        eligible: List[RawListing] = []
        skipped: List[str] = []
        for listing in listings:
            if listing.description_char_count >= self._settings.min_description_chars:
                eligible.append(listing)
            else:
                skipped.append(listing.job_id)
        return eligible, skipped

    async def enrich(self, listings: Sequence[RawListing]) -> EnrichmentResult:
        eligible, skipped = self.split_eligible(listings)
        result = EnrichmentResult(skipped=skipped)
        if not eligible:
            return result

        size = self._settings.enrichment_batch_size
        batches = [eligible[i : i + size] for i in range(0, len(eligible), size)]
        semaphore = asyncio.Semaphore(self._settings.enrichment_concurrency)

        async def bound_batch(batch: List[RawListing]):
            async with semaphore:
                return await self._run_batch(batch)

        logger.info(
            "Enriching %d jobs in %d batches (%d skipped as too short)", len(eligible), len(batches), len(skipped)
        )
        outcomes = await asyncio.gather(*(bound_batch(batch) for batch in batches))
        for attributes, failed in outcomes:
            result.attributes.update(attributes)
            result.failed.update(failed)
        return result

    async def _run_batch(self, batch: List[RawListing]) -> Tuple[Dict[str, EnrichedAttributes], Dict[str, str]]:
        job_ids = [listing.job_id for listing in batch]
        try:
            records = await asyncio.wait_for(
                self._gemini.extract_jobs(batch, self._settings.prompt_description_chars),
                timeout=self._settings.enrichment_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Enrichment batch of %d timed out after %.0fs", len(batch), self._settings.enrichment_timeout)
            return {}, dict.fromkeys(job_ids, "timeout")
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            reason = "rate_limited" if status == 429 else f"http {status}"
            logger.warning("Enrichment batch of %d failed: %s", len(batch), reason)
            return {}, dict.fromkeys(job_ids, reason)
        except (httpx.HTTPError, GeminiError, ValueError) as exc:
            logger.warning("Enrichment batch of %d failed (%s)", len(batch), exc)
            return {}, dict.fromkeys(job_ids, str(exc) or type(exc).__name__)

        wanted = set(job_ids)
        attributes: Dict[str, EnrichedAttributes] = {}
        failed: Dict[str, str] = {}
        for record in records:
            job_id = record.get("job_id")
            if not isinstance(job_id, str) or job_id not in wanted or job_id in attributes or job_id in failed:
                continue
            try:
                attributes[job_id] = EnrichedAttributes.from_dict(record)
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Unusable model record for %s (%s)", job_id, exc)
                failed[job_id] = "malformed model record"
        missing = {job_id: "missing from model response" for job_id in job_ids if job_id not in attributes}
        omitted = len(missing) - len(failed)
        if omitted:
            logger.warning("Model response omitted %d of %d jobs", omitted, len(batch))
        missing.update(failed)
        return attributes, missing
