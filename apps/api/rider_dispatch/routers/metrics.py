from fastapi import APIRouter, Depends

from rider_dispatch.auth.dependencies import AuthContext, require_backoffice
from rider_dispatch.observability import metrics_store
from rider_dispatch.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(_auth: AuthContext = Depends(require_backoffice)) -> MetricsResponse:
    snapshot = metrics_store.snapshot()
    return MetricsResponse(counters=snapshot.counters or {}, timings=snapshot.timings or {})
