from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .config import ScoringWeights
from .model import CandidateProfile, EnrichedAttributes, MatchBreakdown

SENIORITY_LEVELS = ["junior", "mid", "senior", "lead", "manager"]
NEUTRAL_SCORE = 50.0


@dataclass(slots=True)
class MatchResult:
    overall: int = 0
    breakdown: MatchBreakdown = field(default_factory=MatchBreakdown)
    matched_skills: List[str] = field(default_factory=list)
    missing_skills: List[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _coverage(job_items: Sequence[str], candidate_items: Sequence[str]) -> float:
    if not job_items:
        return NEUTRAL_SCORE
    candidate = {item.lower() for item in candidate_items}
    hits = sum(1 for item in job_items if item.lower() in candidate)
    return hits / len(job_items) * 100


def seniority_score(job_level: Optional[str], candidate_level: Optional[str]) -> float:
    job = (job_level or "").lower()
    candidate = (candidate_level or "").lower()
    if job not in SENIORITY_LEVELS or candidate not in SENIORITY_LEVELS:
        return NEUTRAL_SCORE
    return max(0.0, 100.0 - 25 * abs(SENIORITY_LEVELS.index(job) - SENIORITY_LEVELS.index(candidate)))


def experience_score(candidate_years: float, required_years: Optional[int]) -> float:
    shortfall = candidate_years - (required_years or 0)
    if shortfall >= 0:
        return 100.0
    return max(0.0, 100.0 + 20 * shortfall)


def language_score(required: Sequence[str], spoken: Sequence[str]) -> float:
    if not required:
        return 100.0
    return _coverage(required, spoken)


def strict_penalty(overall: int, missing: int, per_missing: int = 10) -> int:
    return max(0, overall - per_missing * missing)


def score_match(
    attributes: EnrichedAttributes,
    profile: Optional[CandidateProfile],
    weights: Optional[ScoringWeights] = None,
    strict: bool = False,
) -> MatchResult:
    """Weighted fit of a job against a candidate; every score is zero without a profile."""
    if profile is None:
        return MatchResult()
    weights = weights or ScoringWeights()

    candidate_skills = {skill.lower() for skill in profile.hard_skills}
    matched = [skill for skill in attributes.hard_skills if skill.lower() in candidate_skills]
    missing = [skill for skill in attributes.hard_skills if skill.lower() not in candidate_skills]

    skills = _coverage(attributes.hard_skills, profile.hard_skills)
    tools = _coverage(attributes.software_tools, profile.software_tools)
    seniority = seniority_score(attributes.seniority_level, profile.seniority)
    experience = experience_score(profile.years_experience, attributes.years_experience_min)
    language = language_score(attributes.required_languages, profile.languages)

    overall = round_half_up(
        skills * weights.hard_skills
        + tools * weights.tools
        + seniority * weights.seniority
        + experience * weights.experience
        + language * weights.language
    )
    if strict and missing:
        overall = strict_penalty(overall, len(missing), weights.strict_penalty_per_missing)

    return MatchResult(
        overall=min(100, max(0, overall)),
        breakdown=MatchBreakdown(
            hard_skills=round_half_up(skills),
            tools=round_half_up(tools),
            seniority=round_half_up(seniority),
            experience=round_half_up(experience),
            language=round_half_up(language),
        ),
        matched_skills=matched,
        missing_skills=missing,
    )


def visa_likelihood(sponsor_matched: bool, visa_mentioned: str, required_languages: Sequence[str]) -> str:
    mentioned = (visa_mentioned or "").lower() == "yes"
    english = any(language.lower() == "english" for language in required_languages)
    if sponsor_matched and (mentioned or english):
        return "High"
    if sponsor_matched or mentioned:
        return "Medium"
    return "Low"
