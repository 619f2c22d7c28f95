"""
Health check response schema.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Storage status reported to load balancers and monitoring."""
    status: Literal["ok"] = "ok"
    storage: Optional[Literal["local", "remote"]] = Field(
        None, description="Backend currently bound"
    )
    db: Literal["connected", "offline"] = Field(
        ..., description="Whether MongoDB is connected"
    )
    last_error: Optional[str] = Field(
        None, description="Last MongoDB connection error, if any"
    )
