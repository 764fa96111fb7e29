"""
Common schemas used across the API.
"""
from typing import Any, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from ..utils.serializers import utcnow


class HealthCheckResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(..., description="Application health status")
    database: str = Field(..., description="Database connection status")
    timestamp: str = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")


class RootResponse(BaseModel):
    """Response schema for root endpoint."""
    message: str = Field(..., description="Welcome message")
    version: str = Field(..., description="API version")
    docs: str = Field(..., description="Documentation URL")
    health: str = Field(..., description="Health check URL")
    status: str = Field(..., description="Application status")
    timestamp: str = Field(..., description="Response timestamp")


class ErrorResponse(BaseModel):
    """Error envelope returned for every handled failure."""
    success: bool = Field(False, description="Always false")
    error: bool = Field(True, description="Always true")
    message: str = Field(..., description="Human-readable error message")
    status_code: int = Field(..., description="HTTP status code")


class ValidationErrorDetail(BaseModel):
    """Individual validation error detail."""
    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Error message")
    input_value: Any = Field(None, description="Value that caused the error")


class ValidationErrorResponse(ErrorResponse):
    """Response schema for request validation errors."""
    details: List[ValidationErrorDetail] = Field(..., description="Detailed validation errors")


class PaginationMeta(BaseModel):
    """Pagination metadata for list responses."""
    current_page: int = Field(..., description="Current page number, starting at 1")
    total_pages: int = Field(..., description="Total number of pages")
    total_count: int = Field(..., description="Total number of items")
    has_next: bool = Field(..., description="Whether a later page exists")
    has_prev: bool = Field(..., description="Whether an earlier page exists")
    page_size: int = Field(..., description="Items per page")


class SuccessResponse(BaseModel):
    """Generic success response schema."""
    success: bool = Field(True, description="Operation success status")
    message: str = Field(..., description="Success message")
    data: Optional[Any] = Field(None, description="Response data")
    timestamp: datetime = Field(default_factory=utcnow, description="Response timestamp")
