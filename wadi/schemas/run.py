"""Run-related Pydantic schemas."""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class RunCreate(BaseModel):
    """Schema for requesting a generation.

    Input and model are validated by the orchestrator so that bad values
    surface as INVALID_INPUT rather than a schema error.
    """

    input: Optional[str] = None
    model: Optional[str] = None


class RunRename(BaseModel):
    custom_name: Optional[str] = None


class RunCreateResponse(BaseModel):
    """Response after a non-streaming run."""

    run: Dict[str, Any]
    credits_used: int
    credits_remaining: int
