"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class SweepRequest(BaseModel):
    """Manual batch correlation trigger."""

    limit: int | None = Field(default=None, ge=1, le=100)
