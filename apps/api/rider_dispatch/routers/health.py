from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rider_dispatch.db.session import SessionLocal
from rider_dispatch.observability import log_event, metrics_store
from rider_dispatch.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse

ReadinessStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(response: Response) -> ReadinessResponse:
    database_status = safe_dependency_status(
        "database", lambda: database_dependency_status(SessionLocal)
    )
    dependencies = [ReadinessDependency(name="database", status=database_status)]

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=readiness_status, dependencies=dependencies)


def safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        result = checker()
    except Exception as exc:  # readiness must fail closed to degraded
        metrics_store.increment("readiness_dependency_error_total")
        log_event(f"readiness_dependency_check_failed: {dependency_name}:{type(exc).__name__}")
        return "error"

    if result != "ok":
        metrics_store.increment("readiness_dependency_error_total")
        return "error"
    return "ok"


def database_dependency_status(session_factory: Callable[[], Session]) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"
