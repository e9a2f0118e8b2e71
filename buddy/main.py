import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env from buddy/.env
buddy_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(buddy_dir, ".env"))

from buddy.core.config import Settings, settings, validate_config  # noqa: E402
from buddy.core.logging import configure_logging  # noqa: E402
from buddy.core.middleware.request_context import RequestContextMiddleware  # noqa: E402
from buddy.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from buddy.api import gamification, health, leaderboard, points, streaks  # noqa: E402
from buddy.features.gamification.container import GamificationServices, build_services  # noqa: E402


def create_app(settings_obj: Optional[Settings] = None, services: Optional[GamificationServices] = None) -> FastAPI:
    """
    Build the FastAPI app.

    When `services` is given the caller owns it; otherwise the store and
    services are built at startup and closed at shutdown.
    """
    cfg = settings_obj or settings
    configure_logging(cfg.ENV)
    validate_config(settings_obj=cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("buddy")
        owned = services is None
        app.state.services = build_services(cfg) if owned else services
        logger.info("Starting Accountability Buddy gamification engine (store=%s)", type(app.state.services.store).__name__)
        try:
            yield
        finally:
            if owned:
                app.state.services.close()
            logger.info("Stopping Accountability Buddy gamification engine...")

    app = FastAPI(title="Accountability Buddy - Gamification", lifespan=lifespan)

    # Middlewares
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in cfg.CORS_ORIGINS.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(points.router, tags=["points"])
    app.include_router(streaks.router, tags=["streaks"])
    app.include_router(gamification.router, tags=["gamification"])
    app.include_router(leaderboard.router, tags=["leaderboard"])
    app.include_router(health.root_router, tags=["health"])
    return app


app = create_app()
