"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """Request DTO base that always forbids unexpected fields."""

    # Requests accept both snake_case names and the camelCase aliases older clients send
    model_config = ConfigDict(extra="forbid", validate_assignment=True, populate_by_name=True)
