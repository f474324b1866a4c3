from textwrap import dedent
from typing import Optional

import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute
from loguru import logger

from scim_mirror.db.pool import MirrorDBPool
from scim_mirror.db.store import PostgresMirrorStore
from scim_mirror.directory.reader import DirectoryReader
from scim_mirror.directory.scim_client import ScimClient
from scim_mirror.errors import handle_broad_exceptions
from scim_mirror.errors import handle_directory_unavailable
from scim_mirror.errors import handle_pydantic_validation_errors
from scim_mirror.exceptions import DirectoryUnavailable
from scim_mirror.ias_auth.token_manager import TokenManager
from scim_mirror.monitoring.logger import configure_logger
from scim_mirror.monitoring.request_context import RequestContextMiddleware
from scim_mirror.routes.routes_groups import ROUTER_GROUPS
from scim_mirror.routes.routes_health import ROUTER_HEALTH
from scim_mirror.routes.routes_sync import ROUTER_SYNC
from scim_mirror.routes.routes_users import ROUTER_USERS
from scim_mirror.settings import Settings
from scim_mirror.sync.apply import ApplyEngine
from scim_mirror.sync.notifier import ChangeNotifier
from scim_mirror.sync.orchestrator import SyncOrchestrator
from scim_mirror.sync.scheduler import SyncScheduler
from scim_mirror.sync.snapshot import SnapshotLoader


def create_app(
    settings: Optional[Settings] = None,
    store=None,
    scim_client: Optional[ScimClient] = None,
) -> FastAPI:
    """Create a FastAPI application.

    Configuration is loaded from environment variables via pydantic-settings.
    store and scim_client replace the PostgreSQL store and the directory client
    (tests pass in-memory or mocked collaborators).
    """
    settings = settings or Settings()

    configure_logger(level=settings.log_level)

    logger.info(
        "Configuration loaded successfully",
        scim_base_url=settings.ias_scim_base_url,
        client_id_set=bool(settings.ias_client_id),
        database_configured=bool(settings.database_connection_string),
        scheduler_enabled=settings.enable_scheduler,
        sync_interval_seconds=settings.sync_interval_seconds,
    )

    app = FastAPI(
        title="SCIM Mirror API",
        version="v1",
        description=dedent(
            """
        Local mirror of the identity directory's users, groups and memberships.

        | Endpoint group | Notes |
        | --- | --- |
        | Users, Groups | served from the mirror |
        | Group members (POST/DELETE) | written to the directory first, then to the mirror |
        | Sync | change notifications and on-demand reconciliation |
        """
        ),
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.settings = settings

    # In-memory token cache (thread-safe)
    app.state.token_manager = TokenManager(
        token_url=settings.ias_token_url,
        client_id=settings.ias_client_id,
        client_secret=settings.ias_client_secret,
        refresh_margin_seconds=settings.token_refresh_margin_seconds,
    )

    app.state.scim_client = scim_client or ScimClient(
        base_url=settings.ias_scim_base_url,
        token_manager=app.state.token_manager,
        connect_timeout=settings.http_connect_timeout_seconds,
        read_timeout=settings.http_read_timeout_seconds,
    )

    db_pool = None
    if store is None:
        if not settings.database_connection_string:
            raise ValueError("database_connection_string must be set when no store is provided")
        db_pool = MirrorDBPool(settings.database_connection_string)
        store = PostgresMirrorStore(db_pool)
    app.state.db_pool = db_pool
    app.state.store = store

    app.state.notifier = ChangeNotifier()
    app.state.orchestrator = SyncOrchestrator(
        reader=DirectoryReader(
            app.state.scim_client,
            page_size=settings.directory_page_size,
            fetch_timeout_seconds=settings.directory_fetch_timeout_seconds,
        ),
        snapshot_loader=SnapshotLoader(store),
        apply_engine=ApplyEngine(store),
        notifier=app.state.notifier,
    )
    app.state.scheduler = SyncScheduler(app.state.orchestrator, interval_seconds=settings.sync_interval_seconds)

    # Add request context middleware for tracking who/where requests come from
    app.add_middleware(RequestContextMiddleware)
    app.include_router(ROUTER_HEALTH, prefix="/api")
    app.include_router(ROUTER_SYNC, prefix="/api")
    app.include_router(ROUTER_USERS, prefix="/api")
    app.include_router(ROUTER_GROUPS, prefix="/api")

    @app.on_event("startup")
    async def startup_mirror():
        """Initialize the mirror database and start the sync scheduler."""
        if app.state.db_pool is not None:
            await app.state.db_pool.initialize()
            logger.success("Mirror database initialized")

        if settings.enable_scheduler:
            app.state.scheduler.start()
        else:
            logger.info("Sync scheduler disabled (enable_scheduler=false)")

    @app.on_event("shutdown")
    async def shutdown_mirror():
        """Stop the scheduler and close directory and database connections."""
        await app.state.scheduler.stop()
        await app.state.scim_client.aclose()
        if app.state.db_pool is not None:
            await app.state.db_pool.close()
            logger.info("Mirror database closed")

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(
        exc_class_or_status_code=DirectoryUnavailable,
        handler=handle_directory_unavailable,
    )

    app.middleware("http")(handle_broad_exceptions)

    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
