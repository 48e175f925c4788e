"""
Shared API models
"""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    version: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "service": "vkg-query-agent",
                    "version": "1.0.0"
                }
            ]
        }
    }
