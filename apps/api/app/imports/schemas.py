"""Pydantic schemas for Import module."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ImportResult(BaseModel):
    """Outcome of one import run."""

    success: bool
    message: str
    processed: int = Field(default=0, description="Records written (inserted + updated)")
    inserted: int = Field(default=0, description="Records that did not exist before")
    updated: int = Field(default=0, description="Records that replaced a stored record")
    errors: list[str] = Field(
        default_factory=list,
        description="Row-level and write-level error messages",
    )

    @classmethod
    def rejected(cls, message: str) -> "ImportResult":
        """Result for a file that was refused before any row was read."""
        return cls(success=False, message=message)
