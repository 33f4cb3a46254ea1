"""pkb API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that opens and closes the asyncpg pool
- Health endpoint at GET /api/health
- The group, tag, smart list and contact routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pkb.api.deps import get_pool, wire_dependencies
from pkb.api.middleware import register_error_handlers
from pkb.api.routers.contacts import router as contacts_router
from pkb.api.routers.groups import router as groups_router
from pkb.api.routers.smartlists import router as smart_lists_router
from pkb.api.routers.tags import router as tags_router
from pkb.config import PkbConfig

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle for the database pool.

    On startup: connect the pool and wire it into the router dependencies.
    On shutdown: close the pool cleanly.
    """
    config: PkbConfig = app.state.config
    db = config.database.build()
    await db.connect()
    wire_dependencies(app, db.require_pool(), config)
    logger.info("pkb API started (database=%s)", db.db_name)

    yield

    await db.close()


def create_app(
    config: PkbConfig | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Loaded configuration; defaults are used when omitted.
    cors_origins:
        Allowed CORS origins. Defaults to ``config.api.cors_origins``.
    """
    config = config or PkbConfig()
    if cors_origins is None:
        cors_origins = config.api.cors_origins

    app = FastAPI(
        title="pkb API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(groups_router)
    app.include_router(tags_router)
    app.include_router(smart_lists_router)
    app.include_router(contacts_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "database": get_pool in app.dependency_overrides}

    return app
