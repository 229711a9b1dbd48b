"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tasksync.api.routes import sync as sync_routes


def create_app(service=None) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        service: SyncService to expose. Built from settings on startup when
                 omitted (tests pass one wired to a fake remote).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = service is None
        if owned:
            from tasksync.sync.factory import build_sync_service
            app.state.sync_service = build_sync_service()
        else:
            app.state.sync_service = service
        await app.state.sync_service.store.bootstrap()
        yield
        if owned:
            await app.state.sync_service.remote.aclose()

    app = FastAPI(
        title="Tasksync API",
        description="Offline-first task store sync engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
