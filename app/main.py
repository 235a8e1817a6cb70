# app/main.py
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import router
from app.engine import ProcurementEngine
from procurement.config import load_config, setup_logging
from procurement.exceptions import (
    BaselineMissing,
    DatasetChanged,
    InsufficientData,
    InvalidInput,
    ParseFailure,
    ProcurementError,
    RateLimited,
    Unauthenticated,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class decides the status code.
ERROR_STATUS_CODES = [
    (ParseFailure, 422),
    (DatasetChanged, 409),
    (InsufficientData, 400),
    (InvalidInput, 400),
    (BaselineMissing, 400),
    (RateLimited, 429),
    (UpstreamUnavailable, 503),
    (Unauthenticated, 502),
]


def status_code_for(error: ProcurementError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 502


def create_app(config: Optional[Dict] = None, engine: Optional[ProcurementEngine] = None) -> FastAPI:
    config = config or load_config()
    setup_logging(config)
    app_config = config["app"]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application startup and shutdown events"""
        logger.info("🔄 Initializing Procurement Engine...")
        app.state.engine = engine or ProcurementEngine(config)
        if not app.state.engine.ai_service.is_configured():
            logger.warning("⚠️ AI API key not set; forecast and benchmark requests will fail")
        logger.info("✅ Procurement Engine initialized successfully")
        yield
        logger.info("🔴 Shutting down Procurement Engine...")
        app.state.engine = None

    app = FastAPI(
        title=app_config["title"],
        description=app_config["description"],
        version=app_config["version"],
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config["cors_origins"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def read_root():
        """Root endpoint"""
        return {
            "message": app_config["title"],
            "status": "active",
            "version": app_config["version"],
            "endpoints": {
                "api_docs": "/docs",
                "health": "/health",
                "historical": "/historical",
                "forecasts": "/forecasts",
                "negotiations": "/negotiations",
                "benchmarks": "/benchmarks",
            },
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        engine_ready = getattr(request.app.state, "engine", None)
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "engine_ready": engine_ready is not None,
            "ai_configured": engine_ready is not None and engine_ready.ai_service.is_configured(),
        }

    @app.exception_handler(ProcurementError)
    async def procurement_error_handler(request: Request, exc: ProcurementError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=404,
            content={
                "detail": getattr(exc, "detail", None) or "Endpoint not found",
                "available_endpoints": ["/", "/health", "/historical", "/forecasts", "/benchmarks", "/docs"],
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    config = load_config()
    logger.info("🚀 Starting Procurement Forecast Analytics API...")
    uvicorn.run("app.main:app", host=config["app"]["host"], port=config["app"]["port"], reload=True, log_level="info")
