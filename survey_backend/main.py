import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.endpoints import branch_rule, channel, question, respond, survey
from .core.config import configure_logging, get_allowed_origins
from .database import create_db_and_tables, engine
from .exceptions import (
    ConflictError,
    EligibilityError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    SurveyServiceError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    NotFoundError: 404,
    PermissionDeniedError: 403,
    EligibilityError: 400,
    ValidationFailedError: 400,
    ConflictError: 409,
    PersistenceError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Application starting")
    await create_db_and_tables()
    yield
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(title="Survey Flow Backend", lifespan=lifespan)

origins = get_allowed_origins()
logger.debug("Allowed CORS origins: %s", origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---


@app.exception_handler(SurveyServiceError)
async def survey_service_error_handler(request: Request, exc: SurveyServiceError):
    status_code = STATUS_BY_ERROR.get(type(exc), 400)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"success": False, "errors": exc.errors})


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "errors": [str(exc.detail)]},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(status_code=422, content={"success": False, "errors": errors})


# --- Routers ---

app.include_router(survey.router, prefix="/api", tags=["surveys"])
app.include_router(question.router, prefix="/api", tags=["questions"])
app.include_router(branch_rule.router, prefix="/api", tags=["branch-rules"])
app.include_router(channel.router, prefix="/api", tags=["channels"])
app.include_router(respond.router, prefix="/api", tags=["respond"])


@app.get("/")
async def read_root():
    return {"message": "Survey Flow Backend"}
