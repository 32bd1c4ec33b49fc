from .system import HealthResponse, HealthCheckRequest, Pagination
from .reports import GenerateReportRequest

__all__ = [
    "HealthResponse",
    "HealthCheckRequest",
    "Pagination",
    "GenerateReportRequest",
]
