from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .model import CandidateProfile, SearchRequest


class CandidateProfilePayload(BaseModel):
    hard_skills: List[str] = Field(default_factory=list)
    software_tools: List[str] = Field(default_factory=list)
    years_experience: float = Field(0, ge=0)
    seniority: str = ""
    languages: List[str] = Field(default_factory=list)
    education_level: str = ""

    def to_profile(self) -> CandidateProfile:
        return CandidateProfile.from_dict(self.model_dump())


class SearchPayload(BaseModel):
    """Body of POST /search. camelCase on the wire, snake_case accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    keywords: str = Field("", max_length=200)
    country: str = "Netherlands"
    city: str = ""
    work_modes: List[str] = Field(default_factory=list)
    employment_types: List[str] = Field(default_factory=list)
    min_salary: int = Field(0, ge=0)
    posted_within: str = ""
    candidate_profile: Optional[CandidateProfilePayload] = None
    match_threshold: int = Field(0, ge=0, le=100)
    strict_mode: bool = False
    ind_sponsor_only: bool = False
    top_n: int = Field(50, ge=1, le=200)
    data_source_filter: Literal["all", "aggregator", "company_direct"] = "all"
    commute_origin: Optional[str] = None
    commute_mode: Literal["transit", "bicycling", "driving", "walking"] = "transit"

    def to_request(self) -> SearchRequest:
        profile = self.candidate_profile
        return SearchRequest(
            keywords=self.keywords.strip(),
            country=self.country.strip() or "Netherlands",
            city=self.city.strip(),
            work_modes=[mode.strip() for mode in self.work_modes if mode.strip()],
            employment_types=[kind.strip() for kind in self.employment_types if kind.strip()],
            min_salary=self.min_salary,
            posted_within=self.posted_within,
            # an empty object means no profile was given
            candidate_profile=profile.to_profile() if profile and profile.model_fields_set else None,
            match_threshold=self.match_threshold,
            strict_mode=self.strict_mode,
            ind_sponsor_only=self.ind_sponsor_only,
            top_n=self.top_n,
            data_source_filter=self.data_source_filter,
            commute_origin=(self.commute_origin or "").strip() or None,
            commute_mode=self.commute_mode,
        )


def parse_search_request(data: dict) -> SearchRequest:
    """Validate a raw payload; raises pydantic.ValidationError (a ValueError) when invalid."""
    return SearchPayload.model_validate(data).to_request()
