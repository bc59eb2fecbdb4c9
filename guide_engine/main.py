from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from guide_engine import __version__
from guide_engine.config import CustomSettings, settings, setup_logging
from guide_engine.dependencies import GuideEngine, build_engine
from guide_engine.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    engine: GuideEngine = app.state.engine
    logger.info("Starting Guide Engine...")

    try:
        await engine.start()
        logger.info("Guide Engine started successfully")
    except Exception as e:
        logger.error(f"Failed to start Guide Engine: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Guide Engine...")
    await engine.stop()
    logger.info("Guide Engine stopped")


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    # Create a properly serializable error response
    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


def create_app(config: CustomSettings | None = None, **engine_options) -> FastAPI:
    """
    Build the FastAPI application with its engine

    Args:
        config: Engine settings (defaults to the environment-loaded settings)
        **engine_options: Overrides passed to build_engine (fetch_text, blob_store, enable_scheduler)
    """
    app = FastAPI(
        title="Guide Engine",
        version=__version__,
        lifespan=lifespan
    )
    app.state.engine = build_engine(config or settings, **engine_options)
    app.include_router(main_router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


app = create_app()
