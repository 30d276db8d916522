from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from ..deps import get_db, require_api_key
from .. import models, schemas
from ..services import goals as goal_service
from ..services.tasks import load_task_records

router = APIRouter(prefix="/goals", tags=["goals"], dependencies=[Depends(require_api_key)])

def _goal_out(g: models.Goal) -> dict:
    return {
        "id": g.id,
        "title": g.title,
        "description": g.description,
        "type": g.type,
        "target_type": g.target_type,
        "target_value": g.target_value,
        "target_category": g.target_category,
        "start_date": g.start_date.isoformat(),
        "end_date": g.end_date.isoformat(),
    }

@router.get("")
def list_goals(db: Session = Depends(get_db)):
    return [_goal_out(g) for g in goal_service.list_goals(db)]

@router.post("")
def create_goal(payload: schemas.GoalCreate, db: Session = Depends(get_db)):
    try:
        g = goal_service.create_goal(db, payload)
    except goal_service.GoalError as e:
        raise HTTPException(422, str(e))
    return {"ok": True, "goal_id": g.id}

@router.get("/{goal_id}/progress")
def get_goal_progress(goal_id: str, db: Session = Depends(get_db)):
    g = db.get(models.Goal, goal_id)
    if not g:
        raise HTTPException(404, "Goal not found")
    return goal_service.goal_progress(g, load_task_records(db), datetime.utcnow())
