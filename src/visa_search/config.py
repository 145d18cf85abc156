from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_IND_REGISTER_URL = (
    "https://ind.nl/en/public-register-recognised-sponsors/"
    "public-register-regular-labour-and-highly-skilled-migrants"
)
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(slots=True)
class AdzunaConfig:
    app_id: Optional[str] = None
    app_key: Optional[str] = None
    country_code: str = "nl"
    results_per_page: int = 50

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.app_key)


@dataclass(slots=True)
class SupabaseConfig:
    url: Optional[str] = None
    service_key: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.service_key)


@dataclass(slots=True)
class PipelineSettings:
    """Tunable thresholds. Values were picked empirically; override per deployment."""

    shortlist_multiplier: int = 2
    shortlist_cap: int = 100
    enrichment_batch_size: int = 20
    enrichment_concurrency: int = 5
    enrichment_timeout: float = 20.0
    min_description_chars: int = 100
    usable_description_chars: int = 200
    description_max_chars: int = 4000
    prompt_description_chars: int = 1500
    fuzzy_match_threshold: float = 0.80
    commute_batch_size: int = 25
    sponsor_page_size: int = 1000
    cache_lookup_chunk: int = 100
    failed_retry_hours: float = 24.0


@dataclass(slots=True)
class ScoringWeights:
    hard_skills: float = 0.40
    tools: float = 0.20
    seniority: float = 0.15
    experience: float = 0.15
    language: float = 0.10
    strict_penalty_per_missing: int = 10


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration for the search pipeline."""

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    google_maps_api_key: Optional[str] = None
    adzuna: AdzunaConfig = field(default_factory=AdzunaConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    sponsor_csv_path: Optional[Path] = None
    ind_register_url: Optional[str] = DEFAULT_IND_REGISTER_URL
    country_name: str = "Netherlands"
    salary_currency: str = "EUR"
    http_timeout: float = 30.0
    region_keywords: List[str] = field(default_factory=lambda: list(NL_REGION_KEYWORDS))
    greenhouse_boards: List[str] = field(default_factory=lambda: list(GREENHOUSE_BOARDS))
    lever_boards: List[str] = field(default_factory=lambda: list(LEVER_BOARDS))
    smartrecruiters_companies: List[str] = field(default_factory=lambda: list(SMARTRECRUITERS_COMPANIES))

    @classmethod
    def from_env(cls) -> "AppConfig":
        settings = PipelineSettings(
            fuzzy_match_threshold=float(os.getenv("FUZZY_MATCH_THRESHOLD", "0.80")),
            enrichment_concurrency=int(os.getenv("ENRICHMENT_CONCURRENCY", "5")),
            enrichment_batch_size=int(os.getenv("ENRICHMENT_BATCH_SIZE", "20")),
            enrichment_timeout=float(os.getenv("ENRICHMENT_TIMEOUT", "20")),
            failed_retry_hours=float(os.getenv("FAILED_RETRY_HOURS", "24")),
        )
        csv_path = os.getenv("SPONSOR_CSV_PATH")
        return cls(
            gemini_api_key=os.getenv("GOOGLE_GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY"),
            adzuna=AdzunaConfig(
                app_id=os.getenv("ADZUNA_APP_ID"),
                app_key=os.getenv("ADZUNA_APP_KEY"),
            ),
            supabase=SupabaseConfig(
                url=os.getenv("SUPABASE_URL"),
                service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
            ),
            settings=settings,
            sponsor_csv_path=Path(csv_path) if csv_path else None,
            ind_register_url=os.getenv("IND_REGISTER_URL", DEFAULT_IND_REGISTER_URL),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
        )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(), format=LOG_FORMAT)


# Dutch tech employers with public ATS boards
GREENHOUSE_BOARDS: List[str] = [
    "booking",
    "adyen",
    "elastic",
    "messagebird",
    "mollie",
    "takeaway",
    "picnic",
    "bunq",
    "coolblue",
    "rituals",
    "tomtom",
    "leaseweb",
    "backbase",
    "lightspeedhq",
    "wetransfer",
    "mymedia",
    "catawiki",
    "sendcloud",
    "sytac",
    "yoursurprise",
    "viber",
    "happeo",
    "polarsteps",
    "meatable",
    "abn",
    "studocu",
    "fabric",
    "optiver",
    "flowtraders",
    "imctrading",
]

LEVER_BOARDS: List[str] = [
    "trivago",
    "gorillas",
    "hellofresh",
    "miro",
    "personio",
    "contentful",
    "spendesk",
    "bynder",
    "talentio",
    "framer",
]

SMARTRECRUITERS_COMPANIES: List[str] = [
    "Shell",
    "Unilever",
    "Philips",
    "ING",
    "KPMG",
    "Deloitte",
    "Heineken",
    "AkzoNobel",
    "ASML",
    "NXPSemiconductors",
    "Wolters-Kluwer",
    "Randstad",
    "Aegon",
    "NN-Group",
]

NL_REGION_KEYWORDS: List[str] = [
    "netherlands",
    "nederland",
    "amsterdam",
    "rotterdam",
    "den haag",
    "the hague",
    "utrecht",
    "eindhoven",
    "tilburg",
    "groningen",
    "leiden",
    "delft",
    "breda",
    "arnhem",
    "maastricht",
    "haarlem",
    "almere",
    "nijmegen",
    "veldhoven",
]
