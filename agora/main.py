"""
Agora Access Kernel

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from agora.config import get_settings
from agora.database import init_db, close_db
from agora.api.v1 import router as api_v1_router
from agora.api.middleware.rate_limit import RateLimitMiddleware
from agora.api.middleware.request_id import RequestIdMiddleware
from agora.kernel.audit.audit_log import audit_failure_count
from agora.kernel.errors import (
    AuthorizationDenied,
    CodeAlreadyRedeemed,
    CodeInactive,
    CodeNotFound,
    EnrollmentError,
    EscalationDenied,
    LastAdminError,
    PrincipalNotFound,
    RecursiveEvaluationError,
)
from agora.schemas.common import ErrorResponse, HealthResponse
from agora.logging_config import configure_logging, get_logger

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Agora Access Kernel

    Identity resolution and policy evaluation for the deliberation platform.

    ## Features

    - **Identity**: bearer tokens and enrollment codes resolve to one canonical principal
    - **Enrollment codes**: admin-issued, atomically redeemed, bound to a principal
    - **Authorization**: one access rule per resource type, checked through `/authorize`
    - **Escalation guard**: tier changes by admins only, with a bootstrap window
    - **Audit**: privileged mutations recorded in the same transaction

    ## Invariants

    1. Unauthenticated requests never write
    2. Draft and archived deliberations are visible to admins only
    3. A bound enrollment code never re-binds without a reset
    4. Once an admin exists, only admins change tiers
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Middleware order: LAST added = OUTERMOST
_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://127.0.0.1:3000",
]

app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, detail: str, code: Optional[str] = None) -> JSONResponse:
    headers = {}
    body = ErrorResponse(detail=detail, code=code)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
        if status_code >= 500:
            body.request_id = req_id
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    response = _error_response(request, exc.status_code, exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(AuthorizationDenied)
async def authorization_denied_handler(request: Request, exc: AuthorizationDenied):
    return _error_response(request, status.HTTP_403_FORBIDDEN, exc.reason, "authorization_denied")


@app.exception_handler(EscalationDenied)
async def escalation_denied_handler(request: Request, exc: EscalationDenied):
    code = "last_admin" if isinstance(exc, LastAdminError) else "escalation_denied"
    return _error_response(request, status.HTTP_403_FORBIDDEN, str(exc), code)


@app.exception_handler(EnrollmentError)
async def enrollment_error_handler(request: Request, exc: EnrollmentError):
    if isinstance(exc, CodeNotFound):
        status_code, code = status.HTTP_404_NOT_FOUND, "code_not_found"
    elif isinstance(exc, CodeInactive):
        status_code, code = status.HTTP_410_GONE, "code_inactive"
    elif isinstance(exc, CodeAlreadyRedeemed):
        status_code, code = status.HTTP_409_CONFLICT, "code_already_redeemed"
    else:
        status_code, code = status.HTTP_400_BAD_REQUEST, "enrollment_error"
    logger.info("Enrollment rejected", extra={"code": code, "path": request.url.path})
    return _error_response(request, status_code, str(exc), code)


@app.exception_handler(PrincipalNotFound)
async def principal_not_found_handler(request: Request, exc: PrincipalNotFound):
    return _error_response(request, status.HTTP_404_NOT_FOUND, str(exc), "principal_not_found")


@app.exception_handler(RecursiveEvaluationError)
async def recursive_evaluation_handler(request: Request, exc: RecursiveEvaluationError):
    logger.exception("Recursive policy evaluation", exc_info=exc)
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "policy_recursion")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {
            "detail": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers={"X-Request-ID": req_id} if req_id else {},
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health. audit_failures counts audit writes lost since start."""
    failures = audit_failure_count()
    return HealthResponse(
        status="ok" if failures == 0 else "degraded",
        version=settings.version,
        database="connected",
        audit_failures=failures,
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "agora.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
