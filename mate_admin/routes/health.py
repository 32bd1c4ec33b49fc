from fastapi import APIRouter, Response

from mate_admin.database import check_connection
from mate_admin.models.system import HealthResponse
from mate_common.observability import metrics_response

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health():
    db_ok = check_connection()
    return HealthResponse(
        status="healthy" if db_ok else "unhealthy",
        db_connected=db_ok,
    )


@router.get("/metrics")
def metrics():
    body, content_type = metrics_response()
    return Response(content=body, media_type=content_type)
