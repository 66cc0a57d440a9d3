"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pagelens.api import analyze, extract, feedback, generate
from pagelens.config import config
from pagelens.database import init_db
from pagelens.errors import PipelineError
from pagelens.schemas import ErrorBody, ErrorResponse
from pagelens.services.browser import browser_manager
from pagelens.services.validation import format_validation_errors

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan hooks.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control is yielded back to FastAPI to run the app.
    """
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting PageLens service...")
    init_db()
    yield
    logger.info("Shutting down PageLens service...")
    await browser_manager.shutdown()


app = FastAPI(
    title="PageLens",
    description="Render web pages in a remote browser and analyze them with hosted models",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def error_response(status_code: int, message: str, details=None) -> JSONResponse:
    """Build the uniform failure envelope."""
    body = ErrorResponse(error=ErrorBody(message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(PipelineError)
async def handle_pipeline_error(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return error_response(400, "Invalid request body", format_validation_errors(exc.errors()))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


# Register routers.
app.include_router(extract.router)
app.include_router(analyze.router)
app.include_router(feedback.router)
app.include_router(generate.router)


@app.get("/")
def read_root():
    """Return service metadata.

    Returns:
        dict: Basic service information for smoke testing.
    """
    return {
        "message": "PageLens",
        "version": VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Return a health probe response.

    Returns:
        dict: Status indicator for health checks.
    """
    return {"status": "healthy"}


def run():
    """Serve the application with uvicorn on the configured address."""
    uvicorn.run(app, host=config.SERVER_HOST, port=config.SERVER_PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
