import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import Response

from rider_dispatch.config import allowed_origins, ensure_secure_runtime_settings, settings
from rider_dispatch.db.migration_check import prepare_schema
from rider_dispatch.db.session import engine
from rider_dispatch.observability import configure_logging, log_event, metrics_store, set_request_id
from rider_dispatch.routers.delivery_requests import router as delivery_requests_router
from rider_dispatch.routers.health import router as health_router
from rider_dispatch.routers.metrics import router as metrics_router
from rider_dispatch.routers.realtime import router as realtime_router
from rider_dispatch.routers.riders import router as riders_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    import rider_dispatch.models  # noqa: F401 (register all SQLAlchemy models)

    if not settings.testing:
        configure_logging()
    ensure_secure_runtime_settings()
    prepare_schema(engine)
    log_event(f"startup: mode={settings.app_mode} request_timeout_s={settings.request_timeout_s}")
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Broadcast delivery requests to online riders; the first rider to accept wins.",
    lifespan=lifespan,
)


def custom_openapi():
    """Adds HTTP Bearer (JWT) auth to the OpenAPI schema for Swagger UI."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    components = openapi_schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        f"http_request {request.method} {request.url.path} {response.status_code}",
        delivery_request_id=request.path_params.get("request_id"),
    )
    return response


app.include_router(health_router)
app.include_router(delivery_requests_router)
app.include_router(riders_router)
app.include_router(realtime_router)
app.include_router(metrics_router)
