from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime, String, Index, Boolean, Date, Integer, Float, JSON, UniqueConstraint
from uuid import uuid4
from datetime import datetime

Base = declarative_base()


class Task(Base):
    """Task store standing in for the task-storage collaborator."""
    __tablename__ = "tasks"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    text = Column(String, nullable=False)
    done = Column(Boolean, default=False, nullable=False)
    deadline = Column(Date, nullable=True)
    priority = Column(String, nullable=True)                 # "high" | "medium" | "low" | None

    category = Column(String, nullable=True)
    main_category = Column(String, nullable=True)
    subcategory = Column(String, nullable=True)
    activity_type = Column(String, nullable=True)

    estimated_minutes = Column(Integer, nullable=True)
    actual_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_pattern = Column(String, nullable=True)        # "daily" | "weekly" | "monthly" | "custom"
    recurring_interval = Column(Integer, nullable=True)
    recurring_days = Column(JSON, nullable=True)             # [0..6], 0 = Sunday
    recurring_start_date = Column(Date, nullable=True)
    recurring_root_id = Column(String, nullable=True, index=True)

    __table_args__ = (
        Index("ix_tasks_done_deadline", "done", "deadline"),
    )


class SeriesState(Base):
    __tablename__ = "series_states"
    recurring_root_id = Column(String, primary_key=True)
    task_text = Column(String, nullable=False, default="")
    active = Column(Boolean, default=True, nullable=False)

    # recurrence definition snapshot
    pattern = Column(String, nullable=False, default="daily")
    interval = Column(Integer, nullable=False, default=1)
    weekdays = Column(JSON, nullable=True)
    anchor_date = Column(Date, nullable=False)

    current_streak = Column(Integer, default=0, nullable=False)
    longest_streak = Column(Integer, default=0, nullable=False)
    total_completed = Column(Integer, default=0, nullable=False)
    total_missed = Column(Integer, default=0, nullable=False)
    last_completed_date = Column(Date, nullable=True)
    last_checked_date = Column(Date, nullable=True)

    # metric aggregates logged at completion time
    total_count = Column(Float, default=0, nullable=False)
    today_count = Column(Float, default=0, nullable=False)
    total_time_minutes = Column(Float, default=0, nullable=False)
    today_time_minutes = Column(Float, default=0, nullable=False)
    total_distance = Column(Float, default=0, nullable=False)
    today_distance = Column(Float, default=0, nullable=False)
    distance_unit = Column(String, nullable=True)
    last_metric_date = Column(Date, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class OccurrenceEntry(Base):
    __tablename__ = "occurrence_entries"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    recurring_root_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String, nullable=False)                  # "completed" | "missed"
    logged_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    corrected_at = Column(DateTime, nullable=True)           # set when a miss was overwritten by a completion

    __table_args__ = (
        # one entry per occurrence; concurrent checks rely on this, not on locks
        UniqueConstraint("recurring_root_id", "date", name="uq_occurrence_root_date"),
        Index("ix_occurrence_root_date", "recurring_root_id", "date"),
    )


class Goal(Base):
    __tablename__ = "goals"
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    type = Column(String, nullable=False)                    # "daily" | "weekly" | "monthly"
    target_type = Column(String, nullable=False)             # "tasks_completed" | "time_spent" | "category_focus"
    target_value = Column(Float, nullable=False)
    target_category = Column(String, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
