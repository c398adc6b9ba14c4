import sys
import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic_core import _pydantic_core
from sqlalchemy import text
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from api.shared.dtos import ErrorResponse
from api.shared.exceptions import InterviewBotException, NotFoundError
from core.logging_config import configure_logging
from core.settings import SETTINGS
from di.container import ApplicationContainer as DependencyContainer

configure_logging(SETTINGS.APP)

logger = structlog.get_logger("interview.api")


class CustomFastAPI(FastAPI):
    container: DependencyContainer


@asynccontextmanager
async def lifespan(_app: CustomFastAPI):
    logger.info("startup_started")
    start_time = time.time()

    try:
        db_resource = _app.container.infrastructure.database()
        await db_resource.init()
        async with db_resource.engine.begin() as _conn:
            await _conn.execute(text("SELECT 1"))
        logger.info(
            "database_connected", elapsed_s=round(time.time() - start_time, 2)
        )
    except Exception as e:
        logger.exception("startup_failed", error=str(e))
        raise

    yield

    try:
        db_resource = _app.container.infrastructure.database()
        if db_resource:
            await db_resource.shutdown()
        logger.info("shutdown_completed")
    except Exception as e:
        logger.exception("shutdown_failed", error=str(e))


def create_fastapi_app() -> CustomFastAPI:
    origins = {
        "*",
        "http://localhost",
        "http://localhost:*",
        "http://localhost:3000",
        "http://localhost:8000",
    }

    _app = CustomFastAPI(
        title="Career Interview Bot API",
        description="Staged career interview chatbot",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Initialize dependency container
    _app.container = DependencyContainer()
    _app.container.infrastructure.config.from_dict(SETTINGS.model_dump())
    _app.container.wire(modules=[sys.modules[__name__]])
    _app.container.init_resources()

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from api.features.interview.router import router as interview_router

    _app.include_router(
        interview_router, prefix="/api/v1/interview", tags=["Interview"]
    )

    return _app


app = create_fastapi_app()


@app.get("/")
async def root():
    return {"message": "Career Interview Bot API is running", "status": "ok"}


@app.get("/health")
async def health():
    return {"status": "ok"}


# Exception handlers
@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": f"{exc.detail} : {request.url}",
            "status_code": 404,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(_pydantic_core.ValidationError)
async def pydantic_validation_handler(
    request: Request, exc: _pydantic_core.ValidationError
):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "detail": str(exc), "status_code": 422},
    )


@app.exception_handler(InterviewBotException)
async def interview_exception_handler(request: Request, exc: InterviewBotException):
    logger.warning("request_failed", error_code=exc.error_code, path=request.url.path)
    status_code = 404 if isinstance(exc, NotFoundError) else 500
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": "An unexpected error occurred",
            "status_code": 500,
        },
    )
