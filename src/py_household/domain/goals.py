"""Savings goal value object and progress helpers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from .errors import ValidationError
from .money import ensure_amount

__all__ = ["GoalType", "Goal", "GOAL_LABEL_PREFIX", "goal_label", "progress_percent", "parse_goal_type"]

# Goal names are shown with this prefix wherever they appear next to account names.
GOAL_LABEL_PREFIX = "\N{DIRECT HIT} "


class GoalType(StrEnum):
    EMERGENCY_FUND = "emergency-fund"
    HOUSE = "house"
    VEHICLE = "vehicle"
    VACATION = "vacation"
    EDUCATION = "education"
    RETIREMENT = "retirement"
    OTHER = "other"


def parse_goal_type(value: str | GoalType | None) -> GoalType:
    if value is None:
        return GoalType.OTHER
    try:
        return GoalType(value.strip().lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown goal type: {value!r}") from exc


def goal_label(name: str) -> str:
    return f"{GOAL_LABEL_PREFIX}{name}"


def progress_percent(accumulated: int, target: int) -> float:
    """Percentage of ``target`` reached, rounded to two decimals (may exceed 100)."""
    if target <= 0:
        return 0.0
    return round(accumulated * 100 / target, 2)


@dataclass(slots=True)
class Goal:
    tenant_id: str
    name: str
    target_amount: int
    goal_type: GoalType = GoalType.OTHER
    deadline: date | None = None

    def __post_init__(self) -> None:
        self.tenant_id = (self.tenant_id or "").strip()
        if not self.tenant_id:
            raise ValidationError("tenant_id is required")
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError("Goal name is required")
        ensure_amount(self.target_amount, field="target_amount")
        self.goal_type = parse_goal_type(self.goal_type)
