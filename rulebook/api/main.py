"""ASGI application for the rulebook server."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from rulebook.api.exceptions import register_exception_handlers
from rulebook.api.middleware import RequestLoggingMiddleware
from rulebook.api.routers import health, qualityprofiles, rules
from rulebook.config import Settings, get_settings, validate_config
from rulebook.database import close_db, init_db
from rulebook.logging_config import configure_logging, get_logger
from rulebook.search import close_search_index, init_search_index

logger = get_logger(__name__)

API_DESCRIPTION = """
Static-analysis rules as seen by one organization.

- **Rule definition**: the rule shipped by a repository plugin, shared by every organization
- **Rule metadata**: organization overrides of status, tags, remediation and notes
- **Template rule**: a parameterized rule from which custom rules are derived
- **Quality profile**: the rules an organization activates for one language
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and readiness checks"},
    {"name": "rules", "description": "Rule lookup, custom rules and organization overrides"},
    {"name": "qualityprofiles", "description": "Quality profiles and rule activation"},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    configure_logging(settings)
    # Production refuses to start on critical configuration issues
    validate_config(settings, strict=settings.is_production)

    await init_db()
    await init_search_index()
    logger.info("Rulebook server started", version=settings.api_version, api_prefix=settings.api_prefix)

    yield

    await close_search_index()
    await close_db()
    logger.info("Rulebook server stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    prefix = settings.api_prefix

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=API_DESCRIPTION,
        openapi_tags=OPENAPI_TAGS,
        docs_url=f"{prefix}/docs",
        redoc_url=None,
        openapi_url=f"{prefix}/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    for router in (health.router, rules.router, qualityprofiles.router):
        app.include_router(router, prefix=prefix)
    register_exception_handlers(app)

    return app


app = create_app()
