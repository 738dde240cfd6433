from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DispatchResponse(BaseModel):
    success: bool = True
    data: Any = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    status: str
    live_connections: int
    engines: List[str]
    tenants: Dict[str, str] = Field(default_factory=dict)
    version: Optional[str] = None
