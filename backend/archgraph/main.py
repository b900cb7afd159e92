import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from archgraph import __version__
from archgraph.adapters.persistence import PersistencePool
from archgraph.adapters.queue import create_queue_adapter
from archgraph.api.routes import router
from archgraph.config import RuntimeSettings

logger = logging.getLogger(__name__)


def create_app(settings: Optional[RuntimeSettings] = None) -> FastAPI:
    settings = settings or RuntimeSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Runtime ready (queue backend: %s)", app.state.queue.kind)
        yield
        await app.state.queue.close()
        await app.state.pool.close()

    app = FastAPI(
        title="Architecture Graph Runtime",
        version=__version__,
        lifespan=lifespan,
    )

    # One pool and queue backend for the process lifetime
    app.state.settings = settings
    app.state.pool = PersistencePool()
    app.state.queue = create_queue_adapter(settings)

    # Middleware FIRST
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes AFTER middleware
    app.include_router(router)

    return app


app = create_app()


def main() -> None:
    """Serve the runtime API (`archgraph-serve`, or `python -m archgraph.main`)."""
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
