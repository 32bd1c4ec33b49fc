"""Pydantic models for report generation."""

from pydantic import BaseModel, Field


class GenerateReportRequest(BaseModel):
    """Request to generate a one-off aggregate report."""

    reportType: str = Field(
        description="user_analytics, ride_analytics, financial_analytics or system_analytics"
    )
    dateRange: str = Field(
        default="7d",
        description="1d, 7d, 30d or 90d; anything else is treated as 7d",
    )
    filters: dict = Field(default_factory=dict)
    format: str = "json"
