from fastapi.testclient import TestClient

from conftest import make_listing
from visa_search.api import create_app
from visa_search.cache import WriteBehind
from visa_search.config import AppConfig
from visa_search.model import EnrichmentSummary, MatchedJob, SearchResponse, SponsorMatch


class StubPipeline:
    def __init__(self):
        self.requests = []
        self.write_behind = WriteBehind()

    async def search(self, request):
        self.requests.append(request)
        job = MatchedJob(
            listing=make_listing(),
            enrichment_status="done",
            sponsor=SponsorMatch(True, "exact", "Adyen", 1.0),
            visa_likelihood="Medium",
            match_score_overall=72,
        )
        return SearchResponse(
            jobs=[job],
            sources={"greenhouse": 1, "adzuna": 0},
            enrichment_summary=EnrichmentSummary(total=1, enriched=1),
        )


def test_health_reports_configured_capabilities():
    config = AppConfig(gemini_api_key="key", ind_register_url=None)
    with TestClient(create_app(config)) as client:
        data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["gemini_configured"] is True
    assert data["adzuna_configured"] is False
    assert data["supabase_configured"] is False


def test_search_returns_ranked_jobs():
    stub = StubPipeline()
    app = create_app(AppConfig(gemini_api_key="key"), pipeline_factory=lambda config, client: stub)
    payload = {
        "keywords": "data engineer",
        "workModes": ["Hybrid"],
        "topN": 5,
        "dataSourceFilter": "company_direct",
        "candidateProfile": {"hard_skills": ["Python"], "years_experience": 3},
    }
    with TestClient(app) as client:
        response = client.post("/search", json=payload)

    assert response.status_code == 200
    data = response.json()
    assert data["sources"] == {"greenhouse": 1, "adzuna": 0}
    assert data["enrichment_summary"] == {"total": 1, "enriched": 1, "cached": 0, "pending": 0, "failed": 0}
    [job] = data["jobs"]
    assert job["job_id"] == "gh-1"
    assert job["ind_registered_sponsor"] is True
    assert job["ind_match_method"] == "exact"
    assert job["match_score_overall"] == 72

    [request] = stub.requests
    assert request.work_modes == ["Hybrid"]
    assert request.top_n == 5
    assert request.data_source_filter == "company_direct"
    assert request.candidate_profile.hard_skills == ["Python"]


def test_invalid_request_is_rejected_before_searching():
    stub = StubPipeline()
    app = create_app(AppConfig(gemini_api_key="key"), pipeline_factory=lambda config, client: stub)
    with TestClient(app) as client:
        assert client.post("/search", json={"topN": 0}).status_code == 422
        assert client.post("/search", json={"workModes": "Hybrid"}).status_code == 422
        response = client.post("/search", json={"dataSourceFilter": "scraped"})
    assert response.status_code == 422
    [error] = response.json()["detail"]
    assert error["loc"] == ["body", "dataSourceFilter"]
    assert stub.requests == []


def test_string_flags_do_not_enable_filters():
    stub = StubPipeline()
    app = create_app(AppConfig(gemini_api_key="key"), pipeline_factory=lambda config, client: stub)
    with TestClient(app) as client:
        response = client.post("/search", json={"strictMode": "false", "indSponsorOnly": "false"})
    assert response.status_code == 200
    [request] = stub.requests
    assert request.strict_mode is False
    assert request.ind_sponsor_only is False


def test_missing_gemini_key_is_a_500():
    with TestClient(create_app(AppConfig(ind_register_url=None))) as client:
        response = client.post("/search", json={"keywords": "engineer"})
    assert response.status_code == 500
    assert response.json() == {"error": "GOOGLE_GEMINI_API_KEY not configured"}
