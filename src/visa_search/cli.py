"""
Command-line interface for the visa job search.

- search: run one search and print the JSON response
- profile: turn a CV (PDF or text) into a candidate profile JSON
- serve: run the HTTP API with uvicorn
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import httpx
import typer
import uvicorn
from dotenv import load_dotenv

from .api import create_app
from .config import AppConfig, configure_logging
from .llm import GeminiClient, GeminiError
from .pipeline import MissingCredentialError, SearchPipeline
from .resume import load_profile
from .schemas import parse_search_request

app = typer.Typer(help="Visa-sponsorship aware job search")


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Overrides LOG_LEVEL")):
    load_dotenv()
    configure_logging(log_level)


def _gemini(config: AppConfig, client: httpx.AsyncClient) -> Optional[GeminiClient]:
    if not config.gemini_api_key:
        return None
    return GeminiClient(client, config.gemini_api_key, config.gemini_model)


async def _run_search(config: AppConfig, payload: dict, profile_path: Optional[Path]) -> dict:
    async with httpx.AsyncClient(timeout=config.http_timeout, follow_redirects=True) as client:
        request = parse_search_request(payload)
        if profile_path is not None:
            request.candidate_profile = await load_profile(profile_path, _gemini(config, client))
        pipeline = SearchPipeline(config, client)
        try:
            response = await pipeline.search(request)
        finally:
            await pipeline.write_behind.drain()
        return response.to_dict()


@app.command()
def search(
    keywords: str = typer.Argument("", help="Role keywords, e.g. 'data engineer'"),
    city: str = typer.Option("", "--city"),
    work_mode: List[str] = typer.Option([], "--work-mode", help="On-site, Hybrid or Remote; repeatable"),
    employment_type: List[str] = typer.Option([], "--employment-type", help="Repeatable"),
    min_salary: int = typer.Option(0, "--min-salary"),
    posted_within: str = typer.Option("", "--posted-within", help="24h, 7d or 30d"),
    profile: Optional[Path] = typer.Option(None, "--profile", help="Profile JSON or CV (PDF/text)"),
    match_threshold: int = typer.Option(0, "--match-threshold", help="Minimum match score 0-100"),
    strict: bool = typer.Option(False, "--strict", help="Penalize every missing required skill"),
    sponsor_only: bool = typer.Option(False, "--sponsor-only", help="Only IND recognised sponsors"),
    top_n: int = typer.Option(50, "--top-n"),
    source: str = typer.Option("all", "--source", help="all, aggregator or company_direct"),
    commute_origin: Optional[str] = typer.Option(None, "--commute-from"),
    commute_mode: str = typer.Option("transit", "--commute-mode"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON here instead of stdout"),
):
    """Fetch, enrich, match and rank jobs, then print the response as JSON."""
    config = AppConfig.from_env()
    payload = {
        "keywords": keywords,
        "city": city,
        "workModes": work_mode,
        "employmentTypes": employment_type,
        "minSalary": min_salary,
        "postedWithin": posted_within,
        "matchThreshold": match_threshold,
        "strictMode": strict,
        "indSponsorOnly": sponsor_only,
        "topN": top_n,
        "dataSourceFilter": source,
        "commuteOrigin": commute_origin,
        "commuteMode": commute_mode,
    }
    try:
        result = asyncio.run(_run_search(config, payload, profile))
    except (MissingCredentialError, GeminiError, httpx.HTTPError, ValueError) as exc:
        typer.echo(f"Search failed: {exc}", err=True)
        raise typer.Exit(code=1)

    text = json.dumps(result, indent=2, ensure_ascii=False)
    if output:
        output.write_text(text, encoding="utf-8")
        typer.echo(f"Wrote {len(result['jobs'])} jobs to {output}")
    else:
        typer.echo(text)


async def _run_profile(config: AppConfig, path: Path) -> dict:
    async with httpx.AsyncClient(timeout=config.http_timeout) as client:
        profile = await load_profile(path, _gemini(config, client))
        return profile.to_dict()


@app.command()
def profile(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CV as PDF or text")):
    """Extract a candidate profile from a CV and print it as JSON."""
    config = AppConfig.from_env()
    try:
        result = asyncio.run(_run_profile(config, path))
    except (GeminiError, httpx.HTTPError, ValueError) as exc:
        typer.echo(f"Profile extraction failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result, indent=2, ensure_ascii=False))


@app.command()
def serve(host: str = typer.Option("127.0.0.1", "--host"), port: int = typer.Option(8000, "--port")):
    """Run the search API."""
    uvicorn.run(create_app(AppConfig.from_env()), host=host, port=port)


if __name__ == "__main__":
    app()
