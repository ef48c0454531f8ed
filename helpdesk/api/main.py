import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from helpdesk import __version__
from helpdesk.api.routers import audit, teams, tickets, users
from helpdesk.api.schemas import ErrorResponse
from helpdesk.core.config import get_settings
from helpdesk.core.logger import configure_logging
from helpdesk.core.rbac.errors import AccessControlError, internal_error_response, to_error_response
from helpdesk.core.rbac.middleware import RBACDenied

settings = get_settings()

configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Helpdesk role-based access control",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RBACDenied)
async def rbac_denied_handler(request: Request, exc: RBACDenied):
    return JSONResponse(status_code=exc.status_code, content=exc.result.body)


@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    if exc.status_code >= 403:
        logger.info("%s %s denied: %s", request.method, request.url.path, exc.code.value)
    return JSONResponse(status_code=exc.status_code, content=to_error_response(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=internal_error_response())


# Include routers
error_responses = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}
app.include_router(users.router, prefix="/api", responses=error_responses)
app.include_router(teams.router, prefix="/api", responses=error_responses)
app.include_router(tickets.router, prefix="/api", responses=error_responses)
app.include_router(audit.router, prefix="/api", responses=error_responses)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}
