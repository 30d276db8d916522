from dataclasses import asdict
from fastapi import APIRouter, Depends, Query
from ..deps import require_api_key
from .. import schemas
from ..services import metric_extractor as extractor

router = APIRouter(prefix="/metrics", tags=["metrics"], dependencies=[Depends(require_api_key)])

@router.post("/extract")
def extract(payload: schemas.ExtractRequest, category: str | None = Query(None, description="expected activity category")):
    result = extractor.extract_metrics(payload.text)
    return {
        "metrics": [asdict(m) for m in result.metrics],
        "activity_category": result.activity_category,
        "confidence": result.confidence,
        "suggested_category": extractor.suggest_category_from_metrics(result.metrics),
        "summary": extractor.format_metrics(result.metrics),
        "validation": extractor.validate_metrics(result.metrics, category),
    }
