"""
Entry point for the FloWorx rules backend.

Creates the FastAPI application and includes the API routers. Run with:

    uvicorn floworx.main:app --reload

"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import api_router
from .api.deps import get_evaluator
from .core.config import get_app_env, settings, validate_runtime_settings
from .core.db import engine
from .core.errors import log_exception
from .core.logging_setup import configure_logging
from .models import Base


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="FloWorx Rules Backend", version="0.1.0")
    app.include_router(api_router)

    @app.on_event("startup")
    def _init_db() -> None:
        logger = logging.getLogger("startup")
        env = get_app_env()
        validate_runtime_settings()
        if settings.auto_create_db:
            try:
                Base.metadata.create_all(bind=engine)
            except Exception as exc:
                log_exception(logger, "DB create_all failed", exc=exc)
                if env == "prod":
                    raise
        logger.info("FloWorx rules backend started env=%s", env)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        # Only stop the predicate pool if a request ever created it.
        if get_evaluator.cache_info().currsize:
            get_evaluator().shutdown()

    return app


app = create_app()
