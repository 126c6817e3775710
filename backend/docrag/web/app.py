"""Main FastAPI application."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from ..config import load_config
from .routes import chat, index, ingest, library, search
from .services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(cfg: Optional[Dict] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the app. Services are created at startup unless injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = services or build_services(cfg or load_config())
        app.state.services = svc
        svc.start()
        logger.info(f"docrag ready: library={svc.files.root}, store={svc.store.path}")
        try:
            yield
        finally:
            svc.stop()

    app = FastAPI(title="docrag", lifespan=lifespan)

    # Setup CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_router = APIRouter(prefix="/api")

    api_router.include_router(ingest.router)
    api_router.include_router(index.router)
    api_router.include_router(library.router)
    api_router.include_router(search.router)
    api_router.include_router(chat.router)

    app.include_router(api_router)
    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("DOCRAG_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(),
        host=os.getenv("DOCRAG_HOST", "127.0.0.1"),
        port=int(os.getenv("DOCRAG_PORT", "8080")),
    )


if __name__ == "__main__":
    main()
