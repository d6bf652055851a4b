"""
Common Schemas
Shared Pydantic models for API responses
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class ErrorResponse(BaseModel):
    """
    Standard error response model

    Returned for every typed engine error
    """
    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "validation_error",
            "message": "Quantity cannot be zero"
        }
    })


class HealthResponse(BaseModel):
    """Service health"""
    status: str
    version: str
    database: str
    debug: Optional[bool] = None
