"""Memory schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MemoryCreate(BaseModel):
    content: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class MemorySearch(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=100)


class MemoryContextRequest(BaseModel):
    query: str = Field(min_length=1)
    max_tokens: int = Field(default=2000, ge=1)
