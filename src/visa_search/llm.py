from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .model import RawListing

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

ENRICH_FUNCTION = "enrich_jobs"
ENRICH_INSTRUCTION = (
    "You are a job listing analyzer. Extract structured data ONLY from what is explicitly stated "
    "in the job description. Do NOT infer, guess, or fabricate any information. If a field is not "
    "mentioned, use null or empty arrays. Be strictly accurate. Return exactly one record per JOB_ID."
)

YES_NO = {"type": "STRING", "enum": ["yes", "no"]}
STRING = {"type": "STRING"}
STRING_LIST = {"type": "ARRAY", "items": {"type": "STRING"}}
INTEGER = {"type": "INTEGER"}

ENRICH_DECLARATION: Dict[str, Any] = {
    "name": ENRICH_FUNCTION,
    "description": "Return enriched data extracted only from job descriptions",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "jobs": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "job_id": STRING,
                        "hard_skills": STRING_LIST,
                        "software_tools": STRING_LIST,
                        "cloud_platforms": STRING_LIST,
                        "ml_ds_methods": STRING_LIST,
                        "data_stack": STRING_LIST,
                        "soft_skills": STRING_LIST,
                        "nice_to_have_skills": STRING_LIST,
                        "years_experience_min": INTEGER,
                        "education_level": STRING,
                        "degree_fields": STRING_LIST,
                        "certifications": STRING_LIST,
                        "required_languages": STRING_LIST,
                        "language_level": STRING,
                        "seniority_level": {
                            "type": "STRING",
                            "enum": ["Junior", "Mid", "Senior", "Lead", "Manager"],
                        },
                        "employment_type": {
                            "type": "STRING",
                            "enum": ["Full-time", "Part-time", "Contract", "Internship", "Temporary"],
                        },
                        "contract_type": STRING,
                        "work_mode": {"type": "STRING", "enum": ["On-site", "Hybrid", "Remote"]},
                        "visa_sponsorship_mentioned": {"type": "STRING", "enum": ["yes", "no", "unclear"]},
                        "relocation_support_mentioned": YES_NO,
                        "job_description_language": STRING,
                        "salary_min": INTEGER,
                        "salary_max": INTEGER,
                        "salary_period": {"type": "STRING", "enum": ["hour", "month", "year"]},
                        "bonus_mentioned": YES_NO,
                        "equity_mentioned": YES_NO,
                        "pension": YES_NO,
                        "health_insurance": YES_NO,
                        "learning_budget": YES_NO,
                        "learning_budget_amount": STRING,
                        "transport_allowance": YES_NO,
                        "car_lease": YES_NO,
                        "home_office_budget": YES_NO,
                        "gym_wellbeing": YES_NO,
                        "extra_holidays": YES_NO,
                        "parental_leave": YES_NO,
                        "benefits_text_raw": STRING,
                        "requirements_raw": STRING,
                    },
                    "required": ["job_id"],
                },
            }
        },
        "required": ["jobs"],
    },
}


class GeminiError(Exception):
    """The model answered without the expected function call."""


def build_enrichment_prompt(listings: Sequence[RawListing], description_chars: int) -> str:
    records = [
        f"JOB_ID: {listing.job_id}\n"
        f"TITLE: {listing.title}\n"
        f"COMPANY: {listing.company_name}\n"
        f"DESCRIPTION: {listing.description_text[:description_chars]}"
        for listing in listings
    ]
    return (
        f"{ENRICH_INSTRUCTION}\n\nAnalyze these {len(listings)} jobs and extract ONLY explicitly "
        f"mentioned information:\n\n" + "\n---\n".join(records)
    )


def _function_args(payload: Dict[str, Any], function_name: str) -> Dict[str, Any]:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise GeminiError("response has no candidates")
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    for part in parts:
        call = part.get("functionCall") if isinstance(part, dict) else None
        if call and call.get("name", function_name) == function_name:
            args = call.get("args")
            if not isinstance(args, dict):
                raise GeminiError(f"{function_name} call carried no arguments")
            return args
    raise GeminiError(f"response did not call {function_name}")


class GeminiClient:
    def __init__(self, client: httpx.AsyncClient, api_key: str, model: str):
        self._client = client
        self.api_key = api_key
        self.model = model

    async def call_function(
        self,
        parts: List[Dict[str, Any]],
        declaration: Dict[str, Any],
        temperature: float = 0.0,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Force a single function call and return its arguments."""
        name = declaration["name"]
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "tools": [{"functionDeclarations": [declaration]}],
            "toolConfig": {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": [name]}},
            "generationConfig": {"temperature": temperature},
        }
        response = await self._client.post(
            GEMINI_URL.format(model=self.model),
            json=payload,
            headers={"x-goog-api-key": self.api_key},
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        if response.status_code == 429:
            logger.warning("Gemini rate limit hit calling %s", name)
        response.raise_for_status()
        return _function_args(response.json(), name)

    async def extract_jobs(
        self, listings: Sequence[RawListing], description_chars: int = 1500, timeout: Optional[float] = None
    ) -> List[Dict[str, Any]]:
        prompt = build_enrichment_prompt(listings, description_chars)
        args = await self.call_function([{"text": prompt}], ENRICH_DECLARATION, temperature=0.0, timeout=timeout)
        jobs = args.get("jobs")
        if not isinstance(jobs, list):
            raise GeminiError("enrich_jobs returned no job list")
        return [job for job in jobs if isinstance(job, dict)]
