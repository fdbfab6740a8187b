from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class UploadResponse(BaseModel):
    code: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    metadata_store: str
    timestamp: datetime
    details: Optional[Dict[str, Any]] = None
