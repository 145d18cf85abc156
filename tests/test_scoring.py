import pytest

from visa_search.model import CandidateProfile, EnrichedAttributes
from visa_search.scoring import (
    experience_score,
    language_score,
    round_half_up,
    score_match,
    seniority_score,
    strict_penalty,
    visa_likelihood,
)


def _profile(**overrides) -> CandidateProfile:
    values = dict(
        hard_skills=["Python", "SQL", "Go"],
        software_tools=["Docker"],
        years_experience=5,
        seniority="Senior",
        languages=["English"],
    )
    values.update(overrides)
    return CandidateProfile(**values)


def test_partial_skill_coverage():
    attributes = EnrichedAttributes(hard_skills=["Python", "SQL", "Go"])
    result = score_match(attributes, _profile(hard_skills=["python", "sql"]))
    assert result.breakdown.hard_skills == 67
    assert result.matched_skills == ["Python", "SQL"]
    assert result.missing_skills == ["Go"]


def test_neutral_defaults_when_job_lists_nothing():
    result = score_match(EnrichedAttributes(), _profile())
    assert result.breakdown.hard_skills == 50
    assert result.breakdown.tools == 50
    assert result.breakdown.seniority == 50
    assert result.breakdown.experience == 100
    assert result.breakdown.language == 100
    # 0.4*50 + 0.2*50 + 0.15*50 + 0.15*100 + 0.1*100
    assert result.overall == 63


def test_strict_mode_subtracts_per_missing_skill():
    attributes = EnrichedAttributes(
        hard_skills=["Python", "SQL", "Go", "Rust", "Java", "Scala"],
        seniority_level="Senior",
    )
    relaxed = score_match(attributes, _profile())
    strict = score_match(attributes, _profile(), strict=True)
    assert relaxed.overall == 70
    assert strict.missing_skills == ["Rust", "Java", "Scala"]
    assert strict.overall == 40


def test_strict_penalty_floors_at_zero():
    assert strict_penalty(70, 3) == 40
    assert strict_penalty(20, 5) == 0


def test_no_profile_scores_zero():
    result = score_match(EnrichedAttributes(hard_skills=["Python"]), None)
    assert result.overall == 0
    assert result.breakdown.hard_skills == 0
    assert result.breakdown.language == 0
    assert result.matched_skills == []
    assert result.missing_skills == []


@pytest.mark.parametrize(
    "job,candidate,expected",
    [("Senior", "senior", 100), ("Junior", "Senior", 50), ("Junior", "Manager", 0), ("Principal", "Senior", 50)],
)
def test_seniority_distance(job, candidate, expected):
    assert seniority_score(job, candidate) == expected


def test_experience_shortfall_is_linear():
    assert experience_score(5, 3) == 100
    assert experience_score(3, 5) == 60
    assert experience_score(0, 10) == 0
    assert experience_score(2, None) == 100


def test_language_coverage_is_case_insensitive():
    assert language_score(["Dutch", "English"], ["english"]) == 50
    assert language_score([], []) == 100


def test_scores_are_bounded_and_deterministic():
    worst = EnrichedAttributes(
        hard_skills=["Rust"],
        software_tools=["K8s"],
        required_languages=["Dutch"],
        seniority_level="Junior",
        years_experience_min=15,
    )
    best = EnrichedAttributes(
        hard_skills=["Python"],
        software_tools=["Docker"],
        required_languages=["English"],
        seniority_level="Senior",
        years_experience_min=2,
    )
    cases = [(worst, _profile(seniority="Manager", years_experience=0)), (best, _profile())]
    for attributes, profile in cases:
        first = score_match(attributes, profile, strict=True)
        second = score_match(attributes, profile, strict=True)
        assert first == second
        assert 0 <= first.overall <= 100
    assert score_match(*cases[0], strict=True).overall == 0
    assert score_match(*cases[1]).overall == 100


def test_round_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(66.666) == 67
    assert round_half_up(0.49) == 0


@pytest.mark.parametrize(
    "sponsor,visa,languages,expected",
    [
        (True, "yes", [], "High"),
        (True, "unclear", ["English"], "High"),
        (True, "no", ["Dutch"], "Medium"),
        (False, "yes", ["English"], "Medium"),
        (False, "unclear", ["English"], "Low"),
        (False, "no", [], "Low"),
    ],
)
def test_visa_likelihood(sponsor, visa, languages, expected):
    assert visa_likelihood(sponsor, visa, languages) == expected
