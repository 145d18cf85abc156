"""Shared fixtures: listing factory, offline config, mock HTTP routing."""

from __future__ import annotations

import json
import re
from typing import Callable, Dict

import httpx
import pytest

from visa_search.config import AppConfig
from visa_search.model import RawListing

LONG_DESCRIPTION = (
    "We are looking for an engineer to build data pipelines in Python and SQL. "
    "You will work with Airflow, dbt and Snowflake in a hybrid team based in Amsterdam. "
    "English is our working language and we sponsor visas for qualified candidates."
)


def make_listing(source: str = "greenhouse", source_job_id: str = "1", **overrides) -> RawListing:
    values = dict(
        source=source,
        source_job_id=source_job_id,
        title="Data Engineer",
        company_name="Adyen",
        url=f"https://example.com/{source}/{source_job_id}",
        city="Amsterdam",
        country="Netherlands",
        description_text=LONG_DESCRIPTION,
        posted_date="2026-10-15",
    )
    values.update(overrides)
    return RawListing(**values)


@pytest.fixture
def listing_factory() -> Callable[..., RawListing]:
    return make_listing


@pytest.fixture
def config() -> AppConfig:
    """A config with no credentials and no remote sponsor register."""
    return AppConfig(ind_register_url=None)


Handler = Callable[[httpx.Request], httpx.Response]


def router(routes: Dict[str, Handler]) -> Handler:
    """Dispatch on the first route key contained in the request URL."""

    def handle(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        for fragment, handler in routes.items():
            if fragment in url:
                return handler(request)
        return httpx.Response(404, json={"error": f"no route for {url}"})

    return handle


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def gemini_reply(name: str, args: dict) -> dict:
    return {"candidates": [{"content": {"parts": [{"functionCall": {"name": name, "args": args}}]}}]}


def prompt_job_ids(request: httpx.Request) -> list:
    body = json.loads(request.content)
    text = body["contents"][0]["parts"][0]["text"]
    return re.findall(r"JOB_ID: (\S+)", text)
