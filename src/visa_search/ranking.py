from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Tuple

from .config import PipelineSettings
from .model import MatchedJob, RawListing, SearchRequest

logger = logging.getLogger(__name__)

KEYWORD_IN_TITLE = 40
KEYWORD_IN_DESCRIPTION = 20
SALARY_PRESENT = 10
USABLE_DESCRIPTION = 10
CITY_MATCH = 10
RECENCY_BONUS = ((3, 15), (7, 10), (14, 5))


def dedup_key(listing: RawListing) -> str:
    return f"{listing.company_name.lower()}_{listing.title.lower()}"


def deduplicate(listings: Iterable[RawListing]) -> List[RawListing]:
    """Keep the first listing per (company, title); callers pass sources in priority order."""
    seen = set()
    unique: List[RawListing] = []
    for listing in listings:
        key = dedup_key(listing)
        if key in seen:
            continue
        seen.add(key)
        unique.append(listing)
    return unique


def _days_old(posted_date: str, today: date) -> Optional[int]:
    try:
        return (today - date.fromisoformat(posted_date[:10])).days
    except (TypeError, ValueError):
        return None


def prescore(listing: RawListing, request: SearchRequest, settings: PipelineSettings, today: date) -> int:
    score = 0
    keyword = request.keywords.lower()
    if keyword:
        if keyword in listing.title.lower():
            score += KEYWORD_IN_TITLE
        elif keyword in listing.description_text.lower():
            score += KEYWORD_IN_DESCRIPTION
    if listing.salary_min is not None or listing.salary_max is not None:
        score += SALARY_PRESENT
    age = _days_old(listing.posted_date, today)
    if age is not None and age >= 0:
        for max_days, bonus in RECENCY_BONUS:
            if age <= max_days:
                score += bonus
                break
    if listing.description_char_count > settings.usable_description_chars:
        score += USABLE_DESCRIPTION
    city = request.city.lower()
    if city and listing.city and city in listing.city.lower():
        score += CITY_MATCH
    return score


def shortlist_size(total: int, top_n: int, settings: PipelineSettings) -> int:
    return min(total, min(settings.shortlist_multiplier * top_n, settings.shortlist_cap))


def shortlist(
    listings: List[RawListing], request: SearchRequest, settings: PipelineSettings, today: Optional[date] = None
) -> Tuple[List[RawListing], List[RawListing]]:
    """Split listings into the enrichment shortlist and the unenriched remainder."""
    today = today or date.today()
    ordered = sorted(listings, key=lambda listing: prescore(listing, request, settings, today), reverse=True)
    size = shortlist_size(len(ordered), request.top_n, settings)
    logger.info("Shortlisted %d of %d listings for enrichment", size, len(ordered))
    return ordered[:size], ordered[size:]


def apply_filters(jobs: Iterable[MatchedJob], request: SearchRequest) -> List[MatchedJob]:
    results = list(jobs)
    if request.work_modes:
        results = [job for job in results if job.work_mode and job.work_mode in request.work_modes]
    if request.employment_types:
        results = [job for job in results if job.employment_type and job.employment_type in request.employment_types]
    if request.ind_sponsor_only:
        results = [job for job in results if job.sponsor.matched]
    if request.match_threshold > 0 and request.candidate_profile is not None:
        results = [job for job in results if job.match_score_overall >= request.match_threshold]
    return results


def rank(jobs: Iterable[MatchedJob], top_n: int) -> List[MatchedJob]:
    ordered = sorted(
        jobs,
        key=lambda job: (job.match_score_overall, job.listing.posted_date, job.salary_max or 0),
        reverse=True,
    )
    return ordered[:top_n]
