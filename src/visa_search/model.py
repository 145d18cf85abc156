from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional


PENDING = "pending"
DONE = "done"
FAILED = "failed"

AGGREGATOR = "aggregator"
COMPANY_DIRECT = "company_direct"

JOB_ID_PREFIXES = {
    "adzuna": "adz",
    "arbeitnow": "arb",
    "greenhouse": "gh",
    "lever": "lv",
    "smartrecruiters": "sr",
}

VISA_MENTION_VALUES = ("yes", "no", "unclear")


@dataclass(slots=True, frozen=True)
class RawListing:
    source: str
    source_job_id: str
    title: str
    company_name: str
    url: str = ""
    apply_url: str = ""
    city: Optional[str] = None
    country: str = ""
    description_text: str = ""
    posted_date: str = ""
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_currency: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    data_source_type: str = AGGREGATOR
    seniority_level: Optional[str] = None
    employment_type: Optional[str] = None
    work_mode: Optional[str] = None
    industry: Optional[str] = None

    @property
    def job_id(self) -> str:
        prefix = JOB_ID_PREFIXES.get(self.source, self.source)
        return f"{prefix}-{self.source_job_id}"

    @property
    def description_char_count(self) -> int:
        return len(self.description_text)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["job_id"] = self.job_id
        data["description_char_count"] = self.description_char_count
        return data

    def store_columns(self) -> Dict[str, Any]:
        """Listing columns of a cached_jobs row."""
        return {
            "source": self.source,
            "source_job_id": self.source_job_id,
            "company_name": self.company_name,
            "job_title": self.title,
            "job_url": self.url or None,
            "apply_url": self.apply_url or None,
            "city": self.city,
            "country": self.country or None,
            "date_posted": self.posted_date[:10] or None,
            "job_description_raw": self.description_text,
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "salary_currency": self.salary_currency,
            "work_lat": self.lat,
            "work_lng": self.lng,
            "data_source_type": self.data_source_type,
            "seniority_level": self.seniority_level,
            "employment_type": self.employment_type,
            "work_mode": self.work_mode,
            "industry": self.industry,
        }


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, float):
        # NaN, inf and 1e999 have no integer form
        return int(value) if math.isfinite(value) else None
    return None


def _yes_no(value: Any) -> Optional[str]:
    text = _optional_str(value)
    if text is None:
        return None
    lowered = text.lower()
    return lowered if lowered in ("yes", "no") else None


@dataclass(slots=True)
class EnrichedAttributes:
    hard_skills: List[str] = field(default_factory=list)
    software_tools: List[str] = field(default_factory=list)
    cloud_platforms: List[str] = field(default_factory=list)
    ml_ds_methods: List[str] = field(default_factory=list)
    data_stack: List[str] = field(default_factory=list)
    soft_skills: List[str] = field(default_factory=list)
    nice_to_have_skills: List[str] = field(default_factory=list)
    degree_fields: List[str] = field(default_factory=list)
    certifications: List[str] = field(default_factory=list)
    required_languages: List[str] = field(default_factory=list)
    language_level: Optional[str] = None
    seniority_level: Optional[str] = None
    employment_type: Optional[str] = None
    contract_type: Optional[str] = None
    work_mode: Optional[str] = None
    years_experience_min: Optional[int] = None
    education_level: Optional[str] = None
    job_description_language: Optional[str] = None
    visa_sponsorship_mentioned: str = "unclear"
    relocation_support_mentioned: Optional[str] = None
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    salary_period: Optional[str] = None
    bonus_mentioned: Optional[str] = None
    equity_mentioned: Optional[str] = None
    pension: Optional[str] = None
    health_insurance: Optional[str] = None
    learning_budget: Optional[str] = None
    learning_budget_amount: Optional[str] = None
    transport_allowance: Optional[str] = None
    car_lease: Optional[str] = None
    home_office_budget: Optional[str] = None
    gym_wellbeing: Optional[str] = None
    extra_holidays: Optional[str] = None
    parental_leave: Optional[str] = None
    benefits_text_raw: Optional[str] = None
    requirements_raw: Optional[str] = None

    LIST_FIELDS = (
        "hard_skills",
        "software_tools",
        "cloud_platforms",
        "ml_ds_methods",
        "data_stack",
        "soft_skills",
        "nice_to_have_skills",
        "degree_fields",
        "certifications",
        "required_languages",
    )
    INT_FIELDS = ("years_experience_min", "salary_min", "salary_max")
    FLAG_FIELDS = (
        "relocation_support_mentioned",
        "bonus_mentioned",
        "equity_mentioned",
        "pension",
        "health_insurance",
        "learning_budget",
        "transport_allowance",
        "car_lease",
        "home_office_budget",
        "gym_wellbeing",
        "extra_holidays",
        "parental_leave",
    )

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnrichedAttributes":
        """Build from a model record or cache row; bad or missing values become empty."""
        values: Dict[str, Any] = {}
        for name in cls.field_names():
            raw = data.get(name)
            if name in cls.LIST_FIELDS:
                values[name] = _string_list(raw)
            elif name in cls.INT_FIELDS:
                values[name] = _optional_int(raw)
            elif name in cls.FLAG_FIELDS:
                values[name] = _yes_no(raw)
            elif name == "visa_sponsorship_mentioned":
                mention = (_optional_str(raw) or "unclear").lower()
                values[name] = mention if mention in VISA_MENTION_VALUES else "unclear"
            else:
                values[name] = _optional_str(raw)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class CacheEntry:
    job_id: str
    description_hash: str
    enrichment_status: str
    attributes: EnrichedAttributes = field(default_factory=EnrichedAttributes)
    enrichment_error: Optional[str] = None
    updated_at: Optional[str] = None
    listing: Optional[RawListing] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CacheEntry":
        job_id = row["job_id"]
        description_hash = row["job_description_hash"]
        if not isinstance(job_id, str) or not isinstance(description_hash, str):
            raise ValueError(f"malformed cache row for {job_id!r}")
        return cls(
            job_id=job_id,
            description_hash=description_hash,
            enrichment_status=str(row.get("enrichment_status") or PENDING),
            attributes=EnrichedAttributes.from_dict(row),
            enrichment_error=row.get("enrichment_error"),
            updated_at=row.get("enrichment_status_updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        row = self.listing.store_columns() if self.listing is not None else {}
        for name, value in self.attributes.to_dict().items():
            # salary, work mode and the like are listing columns too; keep what the listing knew
            if value is not None or name not in row:
                row[name] = value
        row.update(
            {
                "job_id": self.job_id,
                "job_description_hash": self.description_hash,
                "enrichment_status": self.enrichment_status,
                "enrichment_error": self.enrichment_error,
                "enrichment_status_updated_at": self.updated_at,
                "enriched_at": self.updated_at if self.enrichment_status == DONE else None,
            }
        )
        return row


@dataclass(slots=True)
class CandidateProfile:
    hard_skills: List[str] = field(default_factory=list)
    software_tools: List[str] = field(default_factory=list)
    years_experience: float = 0
    seniority: str = ""
    languages: List[str] = field(default_factory=list)
    education_level: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CandidateProfile":
        years = data.get("years_experience") or 0
        if not isinstance(years, (int, float)) or isinstance(years, bool):
            raise ValueError(f"years_experience must be a number, got {years!r}")
        return cls(
            hard_skills=_string_list(data.get("hard_skills")),
            software_tools=_string_list(data.get("software_tools")),
            years_experience=years,
            seniority=_optional_str(data.get("seniority")) or "",
            languages=_string_list(data.get("languages")),
            education_level=_optional_str(data.get("education_level")) or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class SponsorRecord:
    company_name: str
    normalized_name: str


@dataclass(slots=True, frozen=True)
class SponsorMatch:
    matched: bool = False
    method: str = "none"
    matched_name: Optional[str] = None
    score: float = 0.0


@dataclass(slots=True)
class MatchBreakdown:
    hard_skills: int = 0
    tools: int = 0
    seniority: int = 0
    experience: int = 0
    language: int = 0


@dataclass(slots=True)
class MatchedJob:
    listing: RawListing
    attributes: EnrichedAttributes = field(default_factory=EnrichedAttributes)
    enrichment_status: str = PENDING
    sponsor: SponsorMatch = field(default_factory=SponsorMatch)
    visa_likelihood: str = "Low"
    match_score_overall: int = 0
    match_score_breakdown: MatchBreakdown = field(default_factory=MatchBreakdown)
    matched_skills: List[str] = field(default_factory=list)
    missing_skills: List[str] = field(default_factory=list)
    commute_distance_km: Optional[float] = None
    commute_time_min: Optional[int] = None
    commute_time_text: Optional[str] = None
    commute_mode: Optional[str] = None

    @property
    def job_id(self) -> str:
        return self.listing.job_id

    @property
    def work_mode(self) -> Optional[str]:
        return self.attributes.work_mode or self.listing.work_mode

    @property
    def seniority_level(self) -> Optional[str]:
        return self.attributes.seniority_level or self.listing.seniority_level

    @property
    def employment_type(self) -> Optional[str]:
        return self.attributes.employment_type or self.listing.employment_type

    @property
    def salary_min(self) -> Optional[int]:
        return self.listing.salary_min if self.listing.salary_min is not None else self.attributes.salary_min

    @property
    def salary_max(self) -> Optional[int]:
        return self.listing.salary_max if self.listing.salary_max is not None else self.attributes.salary_max

    def to_dict(self) -> Dict[str, Any]:
        data = self.attributes.to_dict()
        data.update(self.listing.to_dict())
        data.update(
            {
                "work_mode": self.work_mode,
                "seniority_level": self.seniority_level,
                "employment_type": self.employment_type,
                "salary_min": self.salary_min,
                "salary_max": self.salary_max,
                "enrichment_status": self.enrichment_status,
                "ind_registered_sponsor": self.sponsor.matched,
                "ind_match_method": self.sponsor.method,
                "ind_matched_name": self.sponsor.matched_name,
                "visa_likelihood": self.visa_likelihood,
                "match_score_overall": self.match_score_overall,
                "match_score_breakdown": asdict(self.match_score_breakdown),
                "matched_skills": list(self.matched_skills),
                "missing_skills": list(self.missing_skills),
                "commute_distance_km": self.commute_distance_km,
                "commute_time_min": self.commute_time_min,
                "commute_time_text": self.commute_time_text,
                "commute_mode": self.commute_mode,
            }
        )
        return data


@dataclass(slots=True)
class SearchRequest:
    keywords: str = ""
    country: str = "Netherlands"
    city: str = ""
    work_modes: List[str] = field(default_factory=list)
    employment_types: List[str] = field(default_factory=list)
    min_salary: int = 0
    posted_within: str = ""
    candidate_profile: Optional[CandidateProfile] = None
    match_threshold: int = 0
    strict_mode: bool = False
    ind_sponsor_only: bool = False
    top_n: int = 50
    data_source_filter: str = "all"
    commute_origin: Optional[str] = None
    commute_mode: str = "transit"


@dataclass(slots=True)
class EnrichmentSummary:
    total: int = 0
    enriched: int = 0
    cached: int = 0
    pending: int = 0
    failed: int = 0


@dataclass(slots=True)
class SearchResponse:
    jobs: List[MatchedJob] = field(default_factory=list)
    sources: Dict[str, int] = field(default_factory=dict)
    enrichment_summary: EnrichmentSummary = field(default_factory=EnrichmentSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "sources": dict(self.sources),
            "enrichment_summary": asdict(self.enrichment_summary),
        }
