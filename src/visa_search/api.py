from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import AppConfig
from .pipeline import MissingCredentialError, SearchPipeline
from .schemas import SearchPayload

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[AppConfig, httpx.AsyncClient], SearchPipeline]


def create_app(config: Optional[AppConfig] = None, pipeline_factory: Optional[PipelineFactory] = None) -> FastAPI:
    config = config or AppConfig.from_env()
    factory = pipeline_factory or SearchPipeline

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with httpx.AsyncClient(timeout=config.http_timeout, follow_redirects=True) as client:
            app.state.pipeline = factory(config, client)
            yield
            await app.state.pipeline.write_behind.drain()

    app = FastAPI(
        title="Visa Job Search API",
        description="Job search with AI enrichment, sponsor matching and candidate scoring",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "gemini_configured": bool(config.gemini_api_key),
            "adzuna_configured": config.adzuna.enabled,
            "supabase_configured": config.supabase.enabled,
            "maps_configured": bool(config.google_maps_api_key),
        }

    @app.post("/search")
    async def search(request: Request, body: SearchPayload):
        pipeline: SearchPipeline = request.app.state.pipeline
        try:
            response = await pipeline.search(body.to_request())
        except MissingCredentialError as exc:
            logger.error("Search aborted: %s", exc)
            return JSONResponse(status_code=500, content={"error": str(exc)})
        return response.to_dict()

    return app
