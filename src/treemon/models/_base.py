"""Base model shared by treemon data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TreeMonBaseModel(BaseModel):
    """Frozen model; instances are replaced, never mutated."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
