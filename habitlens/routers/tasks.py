from datetime import datetime
from fastapi import APIRouter, Depends, Query, HTTPException
from sqlalchemy.orm import Session
from ..deps import get_db, require_api_key
from .. import models, schemas
from ..services.ledger import LedgerError
from ..services.tasks import complete_task

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_api_key)])

@router.post("")
def create_task(payload: schemas.TaskCreate, db: Session = Depends(get_db)):
    if payload.recurring_root_id and not db.get(models.Task, payload.recurring_root_id):
        raise HTTPException(404, "Recurring root task not found")
    t = models.Task(**payload.model_dump())
    db.add(t); db.commit()
    return {"ok": True, "task_id": t.id}

@router.get("")
def list_tasks(
    done: bool | None = Query(None),
    category: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    q = db.query(models.Task)
    if done is not None:
        q = q.filter(models.Task.done == done)
    if category:
        q = q.filter((models.Task.main_category == category) | (models.Task.category == category))
    rows = q.order_by(models.Task.created_at.desc()).limit(limit).all()
    return [schemas.TaskRecord.model_validate(r).model_dump(mode="json") for r in rows]

@router.post("/{task_id}/complete")
def complete(task_id: str, payload: schemas.TaskComplete | None = None, db: Session = Depends(get_db)):
    t = db.get(models.Task, task_id)
    if not t:
        raise HTTPException(404, "Task not found")
    if t.done:
        raise HTTPException(409, "Task already completed")
    try:
        return complete_task(db, t, payload or schemas.TaskComplete(), datetime.utcnow())
    except LedgerError as e:
        raise HTTPException(422, str(e))

@router.delete("/{task_id}")
def delete_task(task_id: str, db: Session = Depends(get_db)):
    t = db.get(models.Task, task_id)
    if not t:
        raise HTTPException(404, "Task not found")
    db.delete(t); db.commit()
    return {"ok": True}
