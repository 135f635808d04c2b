"""Common response schemas."""

from pydantic import BaseModel


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str
    version: str = "1.0.0"
    kv: str
    kv_backend: str
    llm: str
    crm: str


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
