from datetime import date, datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["high", "medium", "low", "none"]
Pattern = Literal["daily", "weekly", "monthly", "custom"]
Period = Literal["week", "month", "quarter"]


class TaskRecord(BaseModel):
    """Read-only task snapshot handed to the analytics engine."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    text: str = ""
    done: bool = False
    deadline: date | None = None
    priority: str | None = None
    category: str | None = None
    main_category: str | None = None
    subcategory: str | None = None
    activity_type: str | None = None
    estimated_minutes: float | None = None
    actual_minutes: float | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    is_recurring: bool = False
    recurring_pattern: str | None = None
    recurring_interval: int | None = None
    recurring_days: list | None = None
    recurring_start_date: date | None = None
    recurring_root_id: str | None = None

    # series fields surfaced on the record for display
    current_streak: int | None = None
    longest_streak: int | None = None
    total_completed: int | None = None
    total_missed: int | None = None
    last_completed_date: date | None = None

    @property
    def category_name(self) -> str:
        return self.main_category or self.category or "Uncategorized"

    @property
    def priority_name(self) -> str:
        return self.priority or "none"

    @property
    def minutes_spent(self) -> float:
        return self.actual_minutes or 0

    @property
    def reference_time(self) -> datetime | None:
        # completion time if done, else creation time
        if self.done and self.completed_at:
            return self.completed_at
        return self.created_at

    @property
    def root_id(self) -> str:
        return self.recurring_root_id or self.id


class TaskCreate(BaseModel):
    text: str = Field(..., min_length=1)
    deadline: date | None = None
    priority: Priority | None = None
    category: str | None = None
    main_category: str | None = None
    subcategory: str | None = None
    activity_type: str | None = None
    estimated_minutes: int | None = Field(default=None, ge=0)
    is_recurring: bool = False
    recurring_pattern: Pattern | None = None
    recurring_interval: int | None = None
    recurring_days: list[int] | None = None
    recurring_start_date: date | None = None
    recurring_root_id: str | None = None


class TaskComplete(BaseModel):
    actual_minutes: int | None = Field(default=None, ge=0)
    completed_on: date | None = None
    # metric values logged with a recurring completion
    count: float | None = None
    distance: float | None = None
    distance_unit: str | None = None


class RecurringCompletion(BaseModel):
    date: date
    count: float | None = None
    time_minutes: float | None = None
    distance: float | None = None
    distance_unit: str | None = None


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str | None = None
    type: Literal["daily", "weekly", "monthly"]
    target_type: Literal["tasks_completed", "time_spent", "category_focus"]
    target_value: float
    target_category: str | None = None
    start_date: date
    end_date: date


class ExtractRequest(BaseModel):
    text: str = ""
