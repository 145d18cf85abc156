from __future__ import annotations

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, TypedDict

import httpx
from bs4 import BeautifulSoup

from .config import AppConfig
from .model import AGGREGATOR, COMPANY_DIRECT, RawListing, SearchRequest

logger = logging.getLogger(__name__)

ADZUNA_URL = "https://api.adzuna.com/v1/api/jobs/{country}/search/1"
ARBEITNOW_URL = "https://www.arbeitnow.com/api/job-board-api"
GREENHOUSE_URL = "https://boards-api.greenhouse.io/v1/boards/{board}/jobs"
LEVER_URL = "https://api.lever.co/v0/postings/{board}"
SMARTRECRUITERS_URL = "https://api.smartrecruiters.com/v1/companies/{company}/postings"
USER_AGENT = "visa-job-search/0.1"

POSTED_WITHIN_DAYS = {"24h": 1, "7d": 7, "30d": 30}
LEVER_WORKPLACE = {"remote": "Remote", "onSite": "On-site", "hybrid": "Hybrid"}


class AdzunaJob(TypedDict, total=False):
    id: Any
    title: str
    redirect_url: str
    created: str
    description: str
    company: Dict[str, Any]
    location: Dict[str, Any]
    category: Dict[str, Any]
    salary_min: float
    salary_max: float
    latitude: float
    longitude: float


class ArbeitnowJob(TypedDict, total=False):
    slug: str
    title: str
    company_name: str
    description: str
    location: str
    remote: bool
    url: str
    tags: List[str]
    job_types: List[str]
    created_at: int


class GreenhouseJob(TypedDict, total=False):
    id: int
    title: str
    updated_at: str
    location: Dict[str, Any]
    absolute_url: str
    content: str


class LeverJob(TypedDict, total=False):
    id: str
    text: str
    createdAt: int
    categories: Dict[str, Any]
    hostedUrl: str
    applyUrl: str
    descriptionPlain: str
    workplaceType: str


class SmartRecruitersJob(TypedDict, total=False):
    id: str
    uuid: str
    name: str
    ref: str
    releasedDate: str
    location: Dict[str, Any]
    company: Dict[str, Any]
    industry: Dict[str, Any]
    experienceLevel: Dict[str, Any]
    typeOfEmployment: Dict[str, Any]
    jobAd: Dict[str, Any]


def html_to_text(value: Optional[str]) -> str:
    if not value:
        return ""
    soup = BeautifulSoup(html.unescape(value), "html.parser")
    return " ".join(soup.get_text(" ", strip=True).split())


def _first_segment(value: Optional[str], separator: str = ",") -> Optional[str]:
    if not value:
        return None
    segment = value.split(separator)[0].strip()
    return segment or None


def _date_prefix(value: Optional[str]) -> str:
    if not value or not isinstance(value, str):
        return ""
    return value.split("T", 1)[0]


def _date_from_epoch(seconds: Optional[float]) -> str:
    if not seconds:
        return ""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()


def _round_salary(value: Any) -> Optional[int]:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return round(value)
    return None


def _in_region(location: str, region_keywords: Iterable[str]) -> bool:
    lowered = location.lower()
    return any(keyword in lowered for keyword in region_keywords)


def _matches_keywords(keywords: str, *fields: Any) -> bool:
    needle = keywords.strip().lower()
    if not needle:
        return True
    for value in fields:
        if isinstance(value, str) and needle in value.lower():
            return True
        if isinstance(value, list) and any(isinstance(item, str) and needle in item.lower() for item in value):
            return True
    return False


class SourceAdapter(ABC):
    """Fetches one job board and normalizes its payload; failures yield no listings."""

    name: str = ""
    data_source_type: str = AGGREGATOR

    def __init__(self, client: httpx.AsyncClient, config: AppConfig):
        self._client = client
        self._config = config
        self._max_chars = config.settings.description_max_chars

    @property
    def enabled(self) -> bool:
        return True

    async def fetch(self, request: SearchRequest) -> List[RawListing]:
        if not self.enabled:
            logger.info("Source %s disabled: credentials not configured", self.name)
            return []
        try:
            listings = await self._fetch(request)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Source %s failed (%s)", self.name, exc)
            return []
        logger.info("Source %s returned %d listings", self.name, len(listings))
        return listings

    @abstractmethod
    async def _fetch(self, request: SearchRequest) -> List[RawListing]:
        """Return normalized listings; may raise, fetch() logs and isolates the failure."""

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        response = await self._client.get(url, params=params, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        return response.json()

    def _description(self, value: Optional[str], is_html: bool = True) -> str:
        text = html_to_text(value) if is_html else " ".join((value or "").split())
        return text[: self._max_chars]


class BoardAdapter(SourceAdapter):
    """Fans out over many company boards; a failing board only loses its own postings."""

    data_source_type = COMPANY_DIRECT
    per_board_limit: int = 10

    @abstractmethod
    def boards(self) -> List[str]:
        """Board identifiers to query."""

    async def _fetch(self, request: SearchRequest) -> List[RawListing]:
        boards = self.boards()
        results = await asyncio.gather(*(self._fetch_board(board, request) for board in boards), return_exceptions=True)
        listings: List[RawListing] = []
        for board, result in zip(boards, results):
            if isinstance(result, BaseException):
                logger.debug("%s board %s failed (%s)", self.name, board, result)
                continue
            listings.extend(result[: self.per_board_limit])
        return listings

    @abstractmethod
    async def _fetch_board(self, board: str, request: SearchRequest) -> List[RawListing]:
        """Listings of one board; raising drops only this board."""


class AdzunaAdapter(SourceAdapter):
    name = "adzuna"

    @property
    def enabled(self) -> bool:
        return self._config.adzuna.enabled

    async def _fetch(self, request: SearchRequest) -> List[RawListing]:
        adzuna = self._config.adzuna
        params = {
            "app_id": adzuna.app_id or "",
            "app_key": adzuna.app_key or "",
            "results_per_page": str(adzuna.results_per_page),
            "content-type": "application/json",
        }
        if request.keywords:
            params["what"] = request.keywords
        if request.city:
            params["where"] = request.city
        if request.min_salary > 0:
            params["salary_min"] = str(request.min_salary)
        if request.posted_within in POSTED_WITHIN_DAYS:
            params["max_days_old"] = str(POSTED_WITHIN_DAYS[request.posted_within])
        data = await self._get_json(ADZUNA_URL.format(country=adzuna.country_code), params)
        return [self.normalize(job) for job in data.get("results") or []]

    def normalize(self, job: AdzunaJob) -> RawListing:
        url = job.get("redirect_url") or ""
        return RawListing(
            source=self.name,
            source_job_id=str(job["id"]),
            title=html_to_text(job.get("title")) or "Unknown",
            company_name=(job.get("company") or {}).get("display_name") or "Unknown",
            url=url,
            apply_url=url,
            city=_first_segment((job.get("location") or {}).get("display_name")),
            country=self._config.country_name,
            description_text=self._description(job.get("description")),
            posted_date=_date_prefix(job.get("created")),
            salary_min=_round_salary(job.get("salary_min")),
            salary_max=_round_salary(job.get("salary_max")),
            salary_currency=self._config.salary_currency,
            lat=job.get("latitude"),
            lng=job.get("longitude"),
            data_source_type=self.data_source_type,
            industry=(job.get("category") or {}).get("label"),
        )


class ArbeitnowAdapter(SourceAdapter):
    name = "arbeitnow"
    limit = 30

    async def _fetch(self, request: SearchRequest) -> List[RawListing]:
        data = await self._get_json(ARBEITNOW_URL)
        region = self._config.region_keywords
        listings: List[RawListing] = []
        for job in data.get("data") or []:
            if not _in_region(job.get("location") or "", region):
                continue
            if not _matches_keywords(
                request.keywords, job.get("title"), job.get("description"), job.get("company_name"), job.get("tags")
            ):
                continue
            listings.append(self.normalize(job))
            if len(listings) >= self.limit:
                break
        return listings

    def normalize(self, job: ArbeitnowJob) -> RawListing:
        slug = job.get("slug") or (job.get("url") or "").rstrip("/").split("/")[-1]
        if not slug:
            raise ValueError("arbeitnow job without slug or url")
        job_types = job.get("job_types") or []
        employment_type = None
        if "full_time" in job_types:
            employment_type = "Full-time"
        elif "part_time" in job_types:
            employment_type = "Part-time"
        return RawListing(
            source=self.name,
            source_job_id=slug,
            title=job.get("title") or "Unknown",
            company_name=job.get("company_name") or "Unknown",
            url=job.get("url") or "",
            apply_url=job.get("url") or "",
            city=_first_segment(job.get("location")),
            country=self._config.country_name,
            description_text=self._description(job.get("description")),
            posted_date=_date_from_epoch(job.get("created_at")),
            salary_currency=self._config.salary_currency,
            data_source_type=self.data_source_type,
            employment_type=employment_type,
            work_mode="Remote" if job.get("remote") else None,
        )


class GreenhouseAdapter(BoardAdapter):
    name = "greenhouse"

    def boards(self) -> List[str]:
        return self._config.greenhouse_boards

    async def _fetch_board(self, board: str, request: SearchRequest) -> List[RawListing]:
        data = await self._get_json(GREENHOUSE_URL.format(board=board), {"content": "true"})
        region = self._config.region_keywords
        listings = []
        for job in data.get("jobs") or []:
            location = (job.get("location") or {}).get("name") or ""
            if not _in_region(location, region):
                continue
            if not _matches_keywords(request.keywords, job.get("title"), html_to_text(job.get("content"))):
                continue
            listings.append(self.normalize(job, board))
        return listings

    def normalize(self, job: GreenhouseJob, board: str) -> RawListing:
        url = job.get("absolute_url") or ""
        return RawListing(
            source=self.name,
            source_job_id=str(job["id"]),
            title=job.get("title") or "Unknown",
            company_name=board[:1].upper() + board[1:],
            url=url,
            apply_url=url,
            city=_first_segment((job.get("location") or {}).get("name")),
            country=self._config.country_name,
            description_text=self._description(job.get("content")),
            posted_date=_date_prefix(job.get("updated_at")),
            salary_currency=self._config.salary_currency,
            data_source_type=self.data_source_type,
        )


class LeverAdapter(BoardAdapter):
    name = "lever"

    def boards(self) -> List[str]:
        return self._config.lever_boards

    async def _fetch_board(self, board: str, request: SearchRequest) -> List[RawListing]:
        jobs = await self._get_json(LEVER_URL.format(board=board), {"mode": "json"})
        if not isinstance(jobs, list):
            raise ValueError(f"lever board {board} returned {type(jobs).__name__}")
        region = self._config.region_keywords
        listings = []
        for job in jobs:
            location = (job.get("categories") or {}).get("location") or ""
            if not _in_region(location, region):
                continue
            if not _matches_keywords(request.keywords, job.get("text"), job.get("descriptionPlain")):
                continue
            listings.append(self.normalize(job, board))
        return listings

    def normalize(self, job: LeverJob, board: str) -> RawListing:
        categories = job.get("categories") or {}
        hosted = job.get("hostedUrl") or ""
        created = job.get("createdAt")
        return RawListing(
            source=self.name,
            source_job_id=str(job["id"]),
            title=job.get("text") or "Unknown",
            company_name=board[:1].upper() + board[1:],
            url=hosted,
            apply_url=job.get("applyUrl") or hosted,
            city=_first_segment(_first_segment(categories.get("location")), "-"),
            country=self._config.country_name,
            description_text=self._description(job.get("descriptionPlain"), is_html=False),
            posted_date=_date_from_epoch(created / 1000) if created else "",
            salary_currency=self._config.salary_currency,
            data_source_type=self.data_source_type,
            employment_type=categories.get("commitment"),
            work_mode=LEVER_WORKPLACE.get(job.get("workplaceType") or ""),
        )


class SmartRecruitersAdapter(BoardAdapter):
    name = "smartrecruiters"
    per_board_limit = 15

    def boards(self) -> List[str]:
        return self._config.smartrecruiters_companies

    async def _fetch_board(self, board: str, request: SearchRequest) -> List[RawListing]:
        data = await self._get_json(SMARTRECRUITERS_URL.format(company=board), {"limit": "100"})
        region = self._config.region_keywords
        listings = []
        for job in data.get("content") or []:
            location = job.get("location") or {}
            place = f"{location.get('city') or ''} {location.get('country') or ''}"
            if not _in_region(place, region):
                continue
            if not _matches_keywords(request.keywords, job.get("name"), self._ad_text(job)):
                continue
            listings.append(self.normalize(job, board))
        return listings

    @staticmethod
    def _ad_text(job: SmartRecruitersJob) -> str:
        sections = (job.get("jobAd") or {}).get("sections") or {}
        return html_to_text((sections.get("jobDescription") or {}).get("text"))

    def normalize(self, job: SmartRecruitersJob, board: str) -> RawListing:
        job_id = job.get("id") or job.get("uuid")
        if not job_id:
            raise ValueError("smartrecruiters posting without id")
        return RawListing(
            source=self.name,
            source_job_id=str(job_id),
            title=job.get("name") or "Unknown",
            company_name=(job.get("company") or {}).get("name") or board,
            url=job.get("ref") or "",
            apply_url=job.get("ref") or "",
            city=(job.get("location") or {}).get("city") or None,
            country=self._config.country_name,
            description_text=self._ad_text(job)[: self._max_chars],
            posted_date=_date_prefix(job.get("releasedDate")),
            salary_currency=self._config.salary_currency,
            data_source_type=self.data_source_type,
            seniority_level=(job.get("experienceLevel") or {}).get("name"),
            employment_type=(job.get("typeOfEmployment") or {}).get("name"),
            industry=(job.get("industry") or {}).get("name"),
        )


def build_adapters(client: httpx.AsyncClient, config: AppConfig) -> List[SourceAdapter]:
    """All adapters in dedup priority order: company boards before aggregators."""
    return [
        GreenhouseAdapter(client, config),
        LeverAdapter(client, config),
        SmartRecruitersAdapter(client, config),
        AdzunaAdapter(client, config),
        ArbeitnowAdapter(client, config),
    ]
