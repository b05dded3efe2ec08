"""
Aivan - Main FastAPI Application
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings
from .api import account_router, chats_router, session_router
from .api.deps import ControllerRegistry
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .enrichment import ResponseEnrichmentPipeline
from .llm import create_llm_provider
from .services import SessionStore
from .storage import LocalKeyValueStore, LocalStorage

logger = logging.getLogger(__name__)


def build_pipeline(config: Settings) -> ResponseEnrichmentPipeline:
    provider = create_llm_provider(
        provider=config.llm_provider,
        api_key=config.gemini_api_key or "",
        model=config.chat_model,
        base_url=config.gemini_base_url,
        image_model=config.image_model,
        timeout=config.llm_timeout,
    )
    if provider is None:
        logger.warning("GEMINI_API_KEY is not set; replies will report a connection error")
    return ResponseEnrichmentPipeline(
        provider,
        chat_model=config.chat_model,
        maps_model=config.maps_model,
        image_model=config.image_model,
        locales=config.enrichment_locales,
        max_place_cards=config.max_place_cards,
    )


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Wire storage, the session store and the pipeline; tear down controllers."""
        setup_logging(config)

        store = LocalStorage(config.local_storage_path)
        app.state.store = store
        app.state.session_store = SessionStore(
            LocalKeyValueStore(config.local_session_path),
            max_age_days=config.session_max_age_days,
        )
        app.state.registry = ControllerRegistry(store, build_pipeline(config), config)

        logger.info(f"Starting {config.app_name} v{config.app_version}")
        logger.info(f"Storage path: {config.local_storage_path}")
        logger.info(f"Debug mode: {config.debug}")
        yield
        app.state.registry.close()
        store.close()
        logger.info(f"Shutting down {config.app_name}")

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Travel and lifestyle assistant with grounded place cards",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if config.log_api_requests:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(session_router)
    app.include_router(chats_router)
    app.include_router(account_router)

    @app.get("/")
    async def root():
        return {
            "app": config.app_name,
            "version": config.app_version,
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "llm_configured": bool(config.gemini_api_key),
            "version": config.app_version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "aivan.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
