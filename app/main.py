from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.core.errors import DelegationValidationError, NotFound, PartialWriteFailure, UnknownProcedure
from app.core.records.feed import ChangeFeed
from app.core.records.store import SqlRecordStore
from app.features.permissions.resolution import ResolutionService
from app.features.users.routes import router as user_router
from app.features.organizations.routes import router as organization_router
from app.features.permissions.routes import router as permission_router
from app.features.delegation.routes import router as delegation_router
from app.features.services.routes import router as service_router
from app.features.users.dependencies import get_authorization_header
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Resource Access",
    description="Permission resolution and delegation service with Appwrite authentication",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(DelegationValidationError)
async def delegation_validation_handler(_request: Request, exc: DelegationValidationError):
    log.info("Rejected delegation write: %s", exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(_request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(UnknownProcedure)
async def unknown_procedure_handler(_request: Request, exc: UnknownProcedure):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PartialWriteFailure)
async def partial_write_handler(_request: Request, exc: PartialWriteFailure):
    return JSONResponse(
        status_code=502,
        content={
            "detail": str(exc),
            "failed": {str(key): str(error) for key, error in exc.failed.items()},
            "succeeded": [str(key) for key in exc.succeeded],
            "created": {str(key): record_id for key, record_id in exc.created.items()},
        },
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


# ============================================================================
# Lifecycle
# ============================================================================

async def start_access_core(
    target: FastAPI,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal
) -> ResolutionService:
    """
    Build the process-wide change feed, record store and resolution
    service, and attach them to `target.state`.
    """
    feed = ChangeFeed()
    store = SqlRecordStore(session_factory, feed)
    resolution = ResolutionService()
    await resolution.start(store, feed)
    target.state.change_feed = feed
    target.state.record_store = store
    target.state.resolution = resolution
    return resolution


@app.on_event("startup")
async def startup():
    """Initialize database and the permission index on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    await start_access_core(app)


@app.on_event("shutdown")
async def shutdown():
    resolution = getattr(app.state, "resolution", None)
    if resolution is not None:
        resolution.stop()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Resource Access API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": [
                "/users/*", "/services/*", "/organizations/*", "/permissions/*", "/delegation/*"
            ],
        },
        "features": {
            "services": "Service -> page -> action resource catalog",
            "permissions": "Job grants, user exceptions and scoped resolution",
            "delegation": "Access and control delegation to jobs and users",
            "organizations": "Job distribution bounding delegable scopes",
            "users": "User placement with Appwrite authentication",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(service_router, prefix="/services", tags=["services"])
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
app.include_router(delegation_router, prefix="/delegation", tags=["delegation"])
