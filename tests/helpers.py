from __future__ import annotations

from datetime import date, datetime
from itertools import count

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from habitlens import models
from habitlens.schemas import TaskRecord

_ids = count(1)


def memory_sessionmaker():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    models.Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def task(**fields) -> TaskRecord:
    fields.setdefault("id", f"t{next(_ids)}")
    fields.setdefault("text", "task")
    return TaskRecord(**fields)


def at(d: date, hour: int = 12) -> datetime:
    return datetime(d.year, d.month, d.day, hour)
