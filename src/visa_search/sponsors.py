from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional

import httpx
import pandas as pd
from bs4 import BeautifulSoup

from .config import AppConfig
from .model import SponsorMatch, SponsorRecord
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)

SPONSOR_TABLE = "ind_sponsors"
LEGAL_SUFFIXES = re.compile(
    r"\b(b\.?v\.?|n\.?v\.?|ltd\.?|inc\.?|gmbh|ag|s\.?a\.?|plc|llc|co\.?|corp\.?"
    r"|holding|group|international|netherlands|nederland)\b",
    re.IGNORECASE,
)
NON_WORD = re.compile(r"[^\w\s]")
WHITESPACE = re.compile(r"\s+")


def normalize_company_name(name: str) -> str:
    """Strip legal-entity suffixes and punctuation so sponsor and job names compare equal."""
    lowered = (name or "").lower()
    stripped = LEGAL_SUFFIXES.sub("", lowered)
    stripped = NON_WORD.sub("", stripped)
    normalized = WHITESPACE.sub(" ", stripped).strip()
    return normalized or lowered.strip()


def _tokens(value: str) -> FrozenSet[str]:
    return frozenset(token for token in value.split() if len(token) > 1)


def token_similarity(a: str, b: str) -> float:
    tokens_a = _tokens(a)
    tokens_b = _tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return 2 * len(tokens_a & tokens_b) / (len(tokens_a) + len(tokens_b))


class SponsorRegistry:
    """In-memory sponsor register matched by exact, prefix, then fuzzy token overlap."""

    def __init__(self, records: Iterable[SponsorRecord], fuzzy_threshold: float = 0.80):
        self.fuzzy_threshold = fuzzy_threshold
        self._display: Dict[str, str] = {}
        for record in records:
            normalized = normalize_company_name(record.normalized_name or record.company_name)
            if normalized and normalized not in self._display:
                self._display[normalized] = record.company_name
        self._tokens = {name: _tokens(name) for name in self._display}
        self._memo: Dict[str, SponsorMatch] = {}

    def __len__(self) -> int:
        return len(self._display)

    def match(self, company_name: str) -> SponsorMatch:
        normalized = normalize_company_name(company_name)
        if not normalized or not self._display:
            return SponsorMatch()
        if normalized not in self._memo:
            self._memo[normalized] = self._match_normalized(normalized)
        return self._memo[normalized]

    def _match_normalized(self, normalized: str) -> SponsorMatch:
        if normalized in self._display:
            return SponsorMatch(True, "exact", self._display[normalized], 1.0)

        for sponsor in self._display:
            if sponsor.startswith(normalized) or normalized.startswith(sponsor):
                return SponsorMatch(True, "prefix", self._display[sponsor], 1.0)

        query_tokens = _tokens(normalized)
        if not query_tokens:
            return SponsorMatch()
        best_score = 0.0
        best_sponsor = ""
        for sponsor, tokens in self._tokens.items():
            if not tokens:
                continue
            score = 2 * len(query_tokens & tokens) / (len(query_tokens) + len(tokens))
            if score > best_score:
                best_score = score
                best_sponsor = sponsor
        if best_score >= self.fuzzy_threshold:
            return SponsorMatch(True, "fuzzy", self._display[best_sponsor], best_score)
        return SponsorMatch(score=best_score)


def _record_from_row(row: dict) -> Optional[SponsorRecord]:
    company = row.get("company_name")
    normalized = row.get("company_name_normalized")
    if not isinstance(company, str) or not company.strip():
        if not isinstance(normalized, str) or not normalized.strip():
            return None
        company = normalized
    if not isinstance(normalized, str):
        normalized = ""
    return SponsorRecord(company.strip(), normalized.strip())


async def load_sponsors_from_supabase(supabase: SupabaseClient, page_size: int = 1000) -> List[SponsorRecord]:
    rows = await supabase.select_all(
        SPONSOR_TABLE, columns="company_name,company_name_normalized", page_size=page_size
    )
    records: List[SponsorRecord] = []
    for row in rows:
        record = _record_from_row(row) if isinstance(row, dict) else None
        if record is None:
            logger.debug("Skipping malformed sponsor row %r", row)
            continue
        records.append(record)
    return records


def _find_company_column(df: pd.DataFrame) -> str:
    for candidate in [
        "company_name",
        "Organisation Name",
        "Organisation",
        "Organization Name",
        "Company Name",
        "Organisatie",
        "Name",
    ]:
        if candidate in df.columns:
            return candidate
    raise ValueError("Unable to locate company name column in sponsor register")


def load_sponsors_from_csv(csv_path: Path) -> List[SponsorRecord]:
    """Read a downloaded sponsor register export."""
    df = pd.read_csv(csv_path, dtype=str)
    company_column = _find_company_column(df)
    names = df[company_column].fillna("").astype(str).str.strip()
    records = [SponsorRecord(name, normalize_company_name(name)) for name in names if len(name) > 1]
    logger.info("Loaded %d sponsors from %s", len(records), csv_path)
    return records


def parse_register_html(html: str) -> List[SponsorRecord]:
    """Company names sit in the first <th> of each table body row."""
    soup = BeautifulSoup(html, "html.parser")
    records: List[SponsorRecord] = []
    for tbody in soup.find_all("tbody"):
        for row in tbody.find_all("tr"):
            header = row.find("th")
            if header is None:
                continue
            name = " ".join(header.get_text(" ", strip=True).split())
            if len(name) > 1:
                records.append(SponsorRecord(name, normalize_company_name(name)))
    return records


async def fetch_register_page(client: httpx.AsyncClient, url: str) -> List[SponsorRecord]:
    response = await client.get(url)
    response.raise_for_status()
    records = parse_register_html(response.text)
    if not records:
        raise ValueError(f"Unable to parse any sponsors from {url}")
    logger.info("Parsed %d sponsors from %s", len(records), url)
    return records


async def load_registry(
    config: AppConfig, client: httpx.AsyncClient, supabase: Optional[SupabaseClient]
) -> SponsorRegistry:
    """Load the full register from the first configured source; an empty registry on failure."""
    threshold = config.settings.fuzzy_match_threshold
    try:
        if supabase is not None:
            records = await load_sponsors_from_supabase(supabase, config.settings.sponsor_page_size)
        elif config.sponsor_csv_path and config.sponsor_csv_path.exists():
            records = await asyncio.to_thread(load_sponsors_from_csv, config.sponsor_csv_path)
        elif config.ind_register_url:
            records = await fetch_register_page(client, config.ind_register_url)
        else:
            logger.info("No sponsor register configured; sponsor matching disabled")
            records = []
    except Exception as exc:  # noqa: BLE001
        logger.warning("Sponsor register load failed (%s)", exc)
        records = []
    registry = SponsorRegistry(records, fuzzy_threshold=threshold)
    logger.info("Sponsor registry ready with %d names", len(registry))
    return registry
