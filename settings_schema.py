from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    default_user_id: str = "default_user"
    weight_unit: Literal["kg", "lb"] = "kg"
    base_experience: float = Field(1000.0, gt=0)
    level_growth: float = Field(1.5, gt=1.0)
    heat_decay_days: int = Field(7, gt=0)
    recent_pr_days: int = Field(30, gt=0)
    recent_pr_limit: int = Field(10, gt=0)
    default_planned_duration: int = Field(45, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    exercise_catalog_path: str | None = None


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
