"""
HTTP application factory.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config import Config, get_config
from ..core.logging import get_logger
from ..orchestration import BuildOrchestrator, JobRunner
from ..services.toolchain import CommandRunner
from . import routes

logger = get_logger(__name__)


def create_app(
    config: Config | None = None,
    runner: CommandRunner | None = None,
    client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration; read from the environment if omitted
        runner: Command runner for external tools
        client: HTTP client for relay uploads and callbacks; the app creates
            and closes its own when omitted
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        http_client = client or httpx.AsyncClient(follow_redirects=True)
        orchestrator = BuildOrchestrator.from_config(config, http_client, runner=runner)
        app.state.config = config
        app.state.orchestrator = orchestrator
        app.state.jobs = JobRunner(
            orchestrator,
            config.pipeline.max_concurrent_jobs,
            record_ttl_seconds=config.pipeline.record_ttl_seconds,
            max_records=config.pipeline.max_records,
        )

        # Jobs accepted before this finishes wait on the cache lock or decode directly
        warmup = asyncio.create_task(orchestrator.template_cache.ensure_ready())
        logger.info("Service started", port=config.server.port, scratch=str(orchestrator.scratch.root))
        try:
            yield
        finally:
            await asyncio.gather(warmup, return_exceptions=True)
            if client is None:
                await http_client.aclose()

    app = FastAPI(title="apkforge", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(routes.router)
    return app
