from __future__ import annotations

import uuid
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shipment_batch.core.config import get_settings
from shipment_batch.core.errors import BatchError
from shipment_batch.core.logging import configure_logging, get_logger
from shipment_batch.routers import batches, templates

settings = get_settings()

configure_logging()
logger = get_logger()

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(batches.router, prefix=settings.api_prefix)
app.include_router(templates.router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"service": settings.app_name}


@app.exception_handler(BatchError)
async def handle_batch_error(request: Request, exc: BatchError):
    logger.warning(
        "request_failed",
        path=str(request.url.path),
        error=exc.code,
        message=exc.message,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    logger.info("request", path=str(request.url.path), method=request.method, request_id=request_id)
    response.headers["X-Request-ID"] = request_id
    return response
