"""Training entry contract shared by the numbering engine and the aggregator."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EntryStatus = Literal["completed", "planned"]


def _normalize_optional_id(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class TrainingEntry(BaseModel):
    """One completed or planned workout belonging to an owner."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    status: EntryStatus
    entry_date: date | None = None
    planned_date: date | None = None
    distance_km: float = Field(default=0.0, ge=0)
    duration_seconds: int | None = Field(default=None, ge=0)
    avg_heart_rate: int | None = Field(default=None, gt=0)
    sequence_number: int | None = Field(default=None, ge=1)
    training_week: int | None = Field(default=None, ge=1)
    linked_plan_id: str | None = None
    created_at: datetime | None = None

    @field_validator("id", "owner_id", mode="before")
    @classmethod
    def validate_identifier(cls, value: object) -> str:
        normalized = str(value).strip() if value is not None else ""
        if not normalized:
            raise ValueError("identifier must not be empty")
        return normalized

    @field_validator("linked_plan_id", mode="before")
    @classmethod
    def normalize_linked_plan_id(cls, value: object) -> str | None:
        return _normalize_optional_id(None if value is None else str(value))

    @field_validator("distance_km", mode="before")
    @classmethod
    def default_missing_distance(cls, value: object) -> object:
        return 0.0 if value is None else value

    @model_validator(mode="after")
    def validate_status_fields(self) -> "TrainingEntry":
        if self.status == "completed" and self.entry_date is None:
            raise ValueError("completed entries require entry_date")
        if self.status == "planned" and self.linked_plan_id is not None:
            raise ValueError("only completed entries can link to a planned entry")
        return self

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def effective_date(self) -> date | None:
        """Date used for ordering and bucketing."""
        if self.status == "completed":
            return self.entry_date
        return self.planned_date or self.entry_date


class NumberingAssignment(BaseModel):
    """Computed target numbering for one entry."""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    sequence_number: int = Field(ge=1)
    training_week: int | None = Field(default=None, ge=1)


class NumberingUpdate(NumberingAssignment):
    """An assignment that differs from the stored values and must be written."""


def split_by_status(
    entries: list[TrainingEntry],
) -> tuple[list[TrainingEntry], list[TrainingEntry]]:
    completed = [e for e in entries if e.status == "completed"]
    planned = [e for e in entries if e.status == "planned"]
    return completed, planned
