"""Pydantic models for the system monitoring endpoints."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    db_connected: bool


class HealthCheckRequest(BaseModel):
    """Body of an on-demand health check; every field is optional."""

    service_name: str = Field(
        default="admin_api",
        min_length=1,
        description="Service the check is recorded against",
    )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
