from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from planbase.core import config
from planbase.core.cache import TTLCache
from planbase.core.database.engine import init_db
from planbase.core.exceptions import NotFoundError
from planbase.core.limiter import limiter
from planbase.features.config_registry.routes import router as config_router
from planbase.features.config_registry.service import ConfigService
from planbase.features.config_registry.strapi import build_strapi_client
from planbase.features.organizations.routes import router as organization_router
from planbase.features.permissions.routes import router as rbac_router
from planbase.features.permissions.service import PermissionService
from planbase.features.users.routes import router as user_router
from planbase.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="PlanBase",
    description="Layered configuration and organization-scoped permissions",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter
app.state.config_service = ConfigService(
    strapi=build_strapi_client(),
    cache=TTLCache(config.CONFIG_CACHE_TTL),
)
app.state.permission_service = PermissionService(cache=TTLCache(config.PERMISSION_CACHE_TTL))


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.planbase.features."), timing=timing, tags=tags))


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
if not config.STRAPI_URL:
    log.warning("STRAPI_URL not set, configuration resolves without CMS values")


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


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError) -> Response:
    log.info("Not found: %s", exc)
    return JSONResponse({"detail": str(exc)}, status_code=404)


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    return {
        "message": "PlanBase API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": ["/users/*", "/organizations/*", "/config/*", "/rbac/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "config": "Layered configuration: defaults, Strapi CMS, scoped overrides",
            "rbac": "Organization-scoped module permissions, subviews and permission packs",
            "organizations": "Multi-tenant organizations and memberships",
            "users": "User management with Appwrite authentication"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])
app.include_router(config_router, prefix="/config", tags=["config"])
app.include_router(rbac_router, prefix="/rbac", tags=["rbac"])
