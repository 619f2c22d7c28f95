"""
Pydantic schemas for API request/response validation.
"""

from api.schemas.health import HealthResponse

__all__ = [
    "HealthResponse",
]
