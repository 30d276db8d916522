import importlib
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import sqlalchemy as sa

from .config import settings
from .deps import engine
from . import models

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="habitlens API", version="0.1.0")

# CORS (dev-friendly; tighten later)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

@app.get("/health")
def health():
    return {"ok": True}

def _ensure_series_metric_columns() -> None:
    """
    Databases created before metric aggregates existed lack the
    series_states.distance_unit column. Add it if missing; a fresh DB gets it
    from create_all().
    """
    insp = sa.inspect(engine)
    if not insp.has_table("series_states"):
        return
    cols = [c["name"] for c in insp.get_columns("series_states")]
    if "distance_unit" not in cols:
        with engine.begin() as conn:
            conn.exec_driver_sql("ALTER TABLE series_states ADD COLUMN distance_unit VARCHAR;")
        logger.info("[migrate] Added series_states.distance_unit")

def _include_routers() -> None:
    for modname in [
        "tasks",
        "recurring",
        "analytics",
        "goals",
        "metrics",
    ]:
        mod = importlib.import_module(f"{__package__}.routers.{modname}")
        app.include_router(mod.router)
        logger.debug("[routers] mounted %s", modname)

@app.on_event("startup")
def _on_startup():
    # 1) create tables for all models
    models.Base.metadata.create_all(bind=engine)
    # 2) run idempotent migrations
    _ensure_series_metric_columns()
    # 3) background missed-check, opt-in
    if settings.scheduler_enabled:
        from .jobs import start_scheduler
        start_scheduler()

# Include routers immediately (not in startup event)
_include_routers()
