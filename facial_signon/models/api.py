"""Unified API response models."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    success: bool = Field(default=False)
    error: str = Field(..., description="Human-readable, non-sensitive error message")
    code: str = Field(..., description="Machine-readable error code")
    vendor_code: Optional[int] = Field(default=None, description="Axiam error code, if any")


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success response wrapper."""

    data: T = Field(..., description="Response data")
