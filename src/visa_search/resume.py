from __future__ import annotations

import asyncio
import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import PyPDF2

from .llm import STRING, STRING_LIST, GeminiClient
from .model import CandidateProfile

logger = logging.getLogger(__name__)

PROFILE_INSTRUCTION = (
    "You are a thorough CV/resume parser. Extract every technical skill, programming language, framework "
    "and method mentioned anywhere in the CV, and every software tool or platform. Compute years_experience "
    "from employment dates when no total is stated. Pick seniority from the most recent job title: Junior, "
    "Mid, Senior, Lead or Manager. Give the highest education level. List all spoken languages, including "
    "English when the CV is written in English.\n\nParse this CV and extract a complete profile:"
)

PROFILE_DECLARATION: Dict[str, Any] = {
    "name": "extract_profile",
    "description": "Extract structured candidate profile from a CV. Only include explicitly mentioned information.",
    "parameters": {
        "type": "OBJECT",
        "properties": {
            "hard_skills": STRING_LIST,
            "software_tools": STRING_LIST,
            "years_experience": {"type": "INTEGER"},
            "education_level": STRING,
            "languages": STRING_LIST,
            "seniority": {"type": "STRING", "enum": ["Junior", "Mid", "Senior", "Lead", "Manager"]},
        },
        "required": ["hard_skills", "software_tools", "years_experience", "education_level", "languages", "seniority"],
    },
}


def extract_pdf_text(source: Union[Path, str, bytes]) -> str:
    if isinstance(source, bytes):
        reader = PyPDF2.PdfReader(io.BytesIO(source))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    with Path(source).open("rb") as file:
        reader = PyPDF2.PdfReader(file)
        pages = [page.extract_text() or "" for page in reader.pages]
        return "\n".join(pages)


async def extract_profile(gemini: GeminiClient, text: str) -> CandidateProfile:
    if not text.strip():
        raise ValueError("CV text is empty")
    args = await gemini.call_function(
        [{"text": text}, {"text": PROFILE_INSTRUCTION}], PROFILE_DECLARATION, temperature=0.2
    )
    profile = CandidateProfile.from_dict(args)
    logger.info(
        "Extracted profile: %d skills, %d tools, %s years",
        len(profile.hard_skills),
        len(profile.software_tools),
        profile.years_experience,
    )
    return profile


async def load_profile(path: Path, gemini: GeminiClient | None = None) -> CandidateProfile:
    """Read a candidate profile from a JSON file, or extract one from a PDF or plain-text CV."""
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path} does not hold a profile object")
        return CandidateProfile.from_dict(data)

    if gemini is None:
        raise ValueError(f"Extracting a profile from {path.name} needs a Gemini API key")
    if path.suffix.lower() == ".pdf":
        text = await asyncio.to_thread(extract_pdf_text, path)
    else:
        text = path.read_text(encoding="utf-8", errors="replace")
    logger.info("Loaded CV %s (%d chars)", path.name, len(text))
    return await extract_profile(gemini, text)
