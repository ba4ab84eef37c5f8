"""
Main application entry point for the Lingoloop service.

Usage:
    - Direct: python -m lingoloop.main
    - ASGI server: uvicorn lingoloop.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from lingoloop import __version__
from lingoloop.api import (
    lingoloop_exception_handler,
    main_router,
    register_module,
    registered_modules,
    validation_exception_handler,
)
from lingoloop.common.config import AppConfig, get_config
from lingoloop.common.error_handling import LingoloopError
from lingoloop.common.logger import app_logger, configure_logger
from lingoloop.database.init_db import close_database, get_session_factory, initialize_database
from lingoloop.database.repository import SQLDeliverableRepository, SQLPerformanceRepository
from lingoloop.dependencies import build_components
from lingoloop.domain.repository import DeliverableRepository, PerformanceRepository
from lingoloop.generation.ai_client import AIGenerationService

logger = app_logger.getChild("main")


def _register_modules() -> None:
    from lingoloop.generation.router import router as generation_router
    from lingoloop.proficiency.router import router as proficiency_router

    for name, router in (("generation", generation_router), ("proficiency", proficiency_router)):
        if name not in registered_modules:
            register_module(name, router)


def create_app(
    config: Optional[AppConfig] = None,
    generation_service: Optional[AIGenerationService] = None,
    deliverables: Optional[DeliverableRepository] = None,
    performance: Optional[PerformanceRepository] = None,
) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    When both repositories are given the database is not touched; this is
    how tests run the API against in-memory stores.

    Args:
        config: Application configuration, loaded from the environment when omitted
        generation_service: AI backend override
        deliverables: Deliverable repository override
        performance: Performance repository override

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup sequence initiated.")
        deliverable_repo, performance_repo = deliverables, performance
        uses_database = deliverable_repo is None or performance_repo is None
        if uses_database:
            await initialize_database(
                config.database.url,
                echo=config.database.echo,
                create_tables=config.database.auto_init,
            )
            session_factory = get_session_factory()
            if deliverable_repo is None:
                deliverable_repo = SQLDeliverableRepository(session_factory)
            if performance_repo is None:
                performance_repo = SQLPerformanceRepository(session_factory)

        app.state.components = build_components(config, deliverable_repo, performance_repo, generation_service)
        logger.info("Application startup sequence complete.")
        try:
            yield
        finally:
            logger.info("Application shutdown sequence initiated.")
            await app.state.components["pipelines"].shutdown()
            if uses_database:
                await close_database()
            logger.info("Application shutdown sequence complete.")

    app = FastAPI(
        title=config.app_name,
        description="AI-generated language exercises and learner proficiency analysis",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_modules()
    app.include_router(main_router, prefix=config.api.prefix)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(LingoloopError, lingoloop_exception_handler)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


def run() -> None:
    config = get_config()
    configure_logger(
        level=config.logging.level,
        use_json=config.logging.json_output,
        log_file=config.logging.file_path,
    )
    uvicorn.run(create_app(config), host=config.api.host, port=config.api.port)


if __name__ == "__main__":
    run()
